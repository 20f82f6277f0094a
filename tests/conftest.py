"""
Shared fixtures for the test suite.

Centralizes the fakes every layer needs: a WebSocket stand-in, a scripted
FX host that answers on the response file, and a bridge wired from mocks
for route tests.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketState

from api.connections import ConnectionRegistry
from api.deps import Bridge
from api.dispatch import MessageDispatcher
from core.config import BridgeConfig
from infrastructure.metrics import _REGISTRY
from ingestion.control_surface import ControlSurfaceTranslator
from ingestion.fx_broker import FxRequestBroker
from ingestion.fx_channel import FxFileChannel

# ---------------------------------------------------------------------------
# Fake WebSocket connection
# ---------------------------------------------------------------------------


class FakeConnection:
    """Looks enough like a Starlette ``WebSocket`` for the registry."""

    def __init__(
        self,
        state: WebSocketState = WebSocketState.CONNECTED,
        *,
        fail: bool = False,
    ) -> None:
        self.client_state = state
        self.application_state = state
        self.send_text = AsyncMock(side_effect=OSError("peer gone") if fail else None)

    @property
    def received(self) -> list[dict]:
        return [json.loads(c.args[0]) for c in self.send_text.await_args_list]


# ---------------------------------------------------------------------------
# Scripted FX host
# ---------------------------------------------------------------------------


class ScriptedHost:
    """Stands in for the mixer's scripting host.

    Installed as the broker's ``sleep``.  On every poll tick it looks at the
    newest command line; if a response is scripted for it, the response is
    written once, on tick ``answer_on_tick`` after the command appeared.
    """

    def __init__(
        self,
        channel: FxFileChannel,
        responses: dict[str, str] | None = None,
        *,
        answer_on_tick: int = 1,
    ) -> None:
        self.channel = channel
        self.responses = dict(responses or {})
        self.answer_on_tick = answer_on_tick
        self.ticks = 0
        self.intervals: list[float] = []
        self._seen_lines = 0
        self._ticks_since_command = 0

    def _command_lines(self) -> list[str]:
        if not self.channel.command_path.exists():
            return []
        return self.channel.command_path.read_text().splitlines()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(0)
        self.ticks += 1
        self.intervals.append(seconds)
        lines = self._command_lines()
        if len(lines) != self._seen_lines:
            self._seen_lines = len(lines)
            self._ticks_since_command = 0
        self._ticks_since_command += 1
        if not lines or self._ticks_since_command != self.answer_on_tick:
            return
        response = self.responses.get(lines[-1])
        if response is not None:
            self.channel.response_path.write_text(response)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def channel(tmp_path: Path) -> FxFileChannel:
    """FX channel backed by files in a per-test temp dir."""
    return FxFileChannel(tmp_path / "fx_commands.txt", tmp_path / "fx_response.txt")


@pytest.fixture()
def make_host(channel: FxFileChannel) -> Callable[..., ScriptedHost]:
    """Factory for a :class:`ScriptedHost` bound to the test channel."""

    def _make(
        responses: dict[str, str] | None = None,
        *,
        target: FxFileChannel | None = None,
        **kwargs: int,
    ) -> ScriptedHost:
        return ScriptedHost(target or channel, responses, **kwargs)

    return _make


@pytest.fixture()
def fake_connection() -> Callable[..., FakeConnection]:
    """Factory for :class:`FakeConnection` objects."""
    return FakeConnection


@pytest.fixture()
def metric() -> Callable[..., float]:
    """Read a sample from the bridge's metric registry (0.0 when unset)."""

    def _sample(name: str, **labels: str) -> float:
        return _REGISTRY.get_sample_value(name, labels) or 0.0

    return _sample


@pytest.fixture()
def mock_translator() -> MagicMock:
    """Translator with no sockets behind it."""
    translator = MagicMock(spec=ControlSurfaceTranslator)
    translator.send.return_value = True
    translator.full_refresh.return_value = 160
    translator.listening = False
    translator.start = AsyncMock(return_value=True)
    return translator


@pytest.fixture()
def bridge(
    channel: FxFileChannel,
    make_host: Callable[..., ScriptedHost],
    mock_translator: MagicMock,
) -> Bridge:
    """Bridge with a mock translator and a real broker answered by a scripted host.

    ``bridge.host`` is the :class:`ScriptedHost`; tests add responses to it.
    """
    config = BridgeConfig(
        fx_command_file=str(channel.command_path),
        fx_response_file=str(channel.response_path),
    )
    host = make_host()
    registry = ConnectionRegistry(on_register=mock_translator.full_refresh)
    broker = FxRequestBroker(channel, registry.broadcast, sleep=host.sleep)
    dispatcher = MessageDispatcher(mock_translator, broker)
    wired = Bridge(
        config=config,
        registry=registry,
        translator=mock_translator,
        broker=broker,
        dispatcher=dispatcher,
    )
    wired.host = host  # type: ignore[attr-defined]
    return wired
