"""
Configuration dataclasses for the live mixer bridge.

These immutable config objects decouple parameter passing from constructor
signatures.  ``BridgeConfig.from_env()`` is the only place that reads the
environment; everything downstream receives a validated instance.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from core.mixer.refresh import DEFAULT_TRACK_COUNT
from core.mixer.types import RequestKind

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class PollPolicy:
    """
    Polling budget for one FX request kind.

    Attributes:
        max_attempts: Number of poll ticks before the request times out.
        interval_seconds: Delay before each tick. Defaults to 50 ms, fast
            enough for UI feedback without hammering the filesystem.

    Example:
        >>> PollPolicy(max_attempts=20).timeout_seconds
        1.0
    """

    max_attempts: int
    interval_seconds: float = 0.05

    def __post_init__(self) -> None:
        """Validate policy parameters."""
        if self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")
        if self.interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be positive, got {self.interval_seconds}"
            )

    @property
    def timeout_seconds(self) -> float:
        """Total wait before the request is abandoned."""
        return round(self.max_attempts * self.interval_seconds, 6)


BYPASS_POLICY = PollPolicy(max_attempts=10)
"""Bypass toggles answer fast: 10 ticks (500 ms)."""

READ_POLICY = PollPolicy(max_attempts=20)
"""Output, full and sends reads: 20 ticks (1 s)."""


def default_poll_policies(interval_seconds: float = 0.05) -> dict[RequestKind, PollPolicy]:
    """Per-kind polling budgets with a shared tick interval."""
    return {
        RequestKind.BYPASS: PollPolicy(BYPASS_POLICY.max_attempts, interval_seconds),
        RequestKind.OUTPUT: PollPolicy(READ_POLICY.max_attempts, interval_seconds),
        RequestKind.FULL: PollPolicy(READ_POLICY.max_attempts, interval_seconds),
        RequestKind.SENDS: PollPolicy(READ_POLICY.max_attempts, interval_seconds),
    }


def _validate_port(name: str, value: int) -> None:
    if not 0 < value < 65536:
        raise ValueError(f"{name} must be in 1..65535, got {value}")


@dataclass(frozen=True)
class BridgeConfig:
    """
    Runtime configuration for the bridge.

    Attributes:
        web_host: Bind address of the HTTP/WebSocket server.
        web_port: Port of the HTTP/WebSocket server (control page at ``/``).
        control_surface_host: Host the mixer listens on for OSC.
        control_surface_port: Port we send OSC TO.
        local_osc_host: Bind address for inbound OSC.
        local_osc_port: Port the mixer sends OSC feedback TO.
        fx_command_file: File the scripting host reads commands from.
        fx_response_file: File the scripting host writes answers to.
        refresh_track_count: Tracks covered by a full refresh.
        poll_policies: Polling budget per FX request kind.
        reject_when_busy: Raise ``BrokerBusyError`` instead of queueing an
            FX request while another one is in flight.
    """

    web_host: str = "0.0.0.0"
    web_port: int = 3000
    control_surface_host: str = "127.0.0.1"
    control_surface_port: int = 9000
    local_osc_host: str = "0.0.0.0"
    local_osc_port: int = 8000
    fx_command_file: str = "/tmp/fx_commands.txt"
    fx_response_file: str = "/tmp/fx_response.txt"
    refresh_track_count: int = DEFAULT_TRACK_COUNT
    poll_policies: dict[RequestKind, PollPolicy] = field(default_factory=default_poll_policies)
    reject_when_busy: bool = False

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        _validate_port("web_port", self.web_port)
        _validate_port("control_surface_port", self.control_surface_port)
        _validate_port("local_osc_port", self.local_osc_port)
        if self.refresh_track_count < 0:
            raise ValueError(
                f"refresh_track_count must be non-negative, got {self.refresh_track_count}"
            )
        if self.fx_command_file == self.fx_response_file:
            raise ValueError("fx_command_file and fx_response_file must differ")
        missing = set(RequestKind) - set(self.poll_policies)
        if missing:
            raise ValueError(
                f"poll_policies missing kinds: {sorted(kind.value for kind in missing)}"
            )

    def policy_for(self, kind: RequestKind) -> PollPolicy:
        """Polling budget for ``kind``."""
        return self.poll_policies[kind]

    @classmethod
    def from_env(cls) -> BridgeConfig:
        """Build a config from ``MIXER_*`` environment variables.

        Unset variables keep their defaults.

        Raises:
            ValueError: On non-numeric ports/intervals or invalid values.
        """
        defaults = cls()
        interval_ms = os.getenv("MIXER_POLL_INTERVAL_MS")
        policies = (
            default_poll_policies(float(interval_ms) / 1000.0)
            if interval_ms
            else default_poll_policies()
        )
        return cls(
            web_host=os.getenv("MIXER_WEB_HOST", defaults.web_host),
            web_port=int(os.getenv("MIXER_WEB_PORT", str(defaults.web_port))),
            control_surface_host=os.getenv("MIXER_OSC_HOST", defaults.control_surface_host),
            control_surface_port=int(
                os.getenv("MIXER_OSC_PORT", str(defaults.control_surface_port))
            ),
            local_osc_host=os.getenv("MIXER_LOCAL_OSC_HOST", defaults.local_osc_host),
            local_osc_port=int(
                os.getenv("MIXER_LOCAL_OSC_PORT", str(defaults.local_osc_port))
            ),
            fx_command_file=os.getenv("MIXER_FX_COMMAND_FILE", defaults.fx_command_file),
            fx_response_file=os.getenv("MIXER_FX_RESPONSE_FILE", defaults.fx_response_file),
            refresh_track_count=int(
                os.getenv("MIXER_REFRESH_TRACKS", str(defaults.refresh_track_count))
            ),
            poll_policies=policies,
            reject_when_busy=os.getenv("MIXER_REJECT_WHEN_BUSY", "0").strip().lower()
            in _TRUTHY,
        )


DEFAULT_CONFIG = BridgeConfig()
"""Default configuration: web on 3000, OSC out to 127.0.0.1:9000, OSC in on 8000."""
