"""
FastAPI dependency providers.

The bridge is one object graph (registry, translator, broker, dispatcher)
wired once per process and reused by every connection.  ``get_bridge`` is
the dependency routes declare; tests override it with a graph built from
mocks.
"""

from __future__ import annotations

from dataclasses import dataclass

from api.connections import ConnectionRegistry
from api.dispatch import MessageDispatcher
from core.config import BridgeConfig
from ingestion.control_surface import ControlSurfaceTranslator
from ingestion.fx_broker import FxRequestBroker
from ingestion.fx_channel import FxFileChannel


@dataclass
class Bridge:
    """Every long-lived component of a running bridge."""

    config: BridgeConfig
    registry: ConnectionRegistry
    translator: ControlSurfaceTranslator
    broker: FxRequestBroker
    dispatcher: MessageDispatcher


def build_bridge(config: BridgeConfig) -> Bridge:
    """
    Wire a bridge from ``config``.

    Each new client triggers one full refresh; results from both the OSC
    listener and the FX broker fan out through the registry.
    """
    registry = ConnectionRegistry()
    translator = ControlSurfaceTranslator(
        registry.broadcast,
        config.control_surface_host,
        config.control_surface_port,
        listen_host=config.local_osc_host,
        listen_port=config.local_osc_port,
        refresh_track_count=config.refresh_track_count,
    )
    registry.on_register = translator.full_refresh
    broker = FxRequestBroker(
        FxFileChannel.from_paths(config.fx_command_file, config.fx_response_file),
        registry.broadcast,
        config.poll_policies,
        reject_when_busy=config.reject_when_busy,
    )
    dispatcher = MessageDispatcher(translator, broker)
    return Bridge(
        config=config,
        registry=registry,
        translator=translator,
        broker=broker,
        dispatcher=dispatcher,
    )


_config: BridgeConfig | None = None


def get_config() -> BridgeConfig:
    """Return the process configuration, read from the environment on first call."""
    global _config  # noqa: PLW0603
    if _config is None:
        _config = BridgeConfig.from_env()
    return _config


def set_config(config: BridgeConfig) -> None:
    """Install ``config`` before the first ``get_bridge`` call (CLI overrides)."""
    global _config, _bridge  # noqa: PLW0603
    _config = config
    _bridge = None


_bridge: Bridge | None = None


def get_bridge() -> Bridge:
    """
    Return a cached ``Bridge`` singleton.

    Shared across all connections so the registry sees every client and
    the broker's single-flight lock covers every request.
    """
    global _bridge  # noqa: PLW0603
    if _bridge is None:
        _bridge = build_bridge(get_config())
    return _bridge
