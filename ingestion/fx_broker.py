"""ingestion/fx_broker.py — Request/response over the FX file channel.

The scripting host cannot push anything to the bridge, so every FX read is
emulated as a short-lived state machine::

    IDLE → CHANNEL_CLEARED → COMMAND_WRITTEN → POLLING ─┬→ RESOLVED
                                                        └→ TIMED_OUT

1. Truncate the response file.
2. Append the command line.
3. Every ``interval_seconds`` read the response file, up to
   ``max_attempts`` ticks, until it holds a complete line.
4. Parse the lines for the request kind, truncate the response file.
5. Broadcast the result to every client.

A timeout is a soft failure: nothing is broadcast and nothing is raised.
Clients treat the absence of an update as "state unknown" and ask again.

Single flight
─────────────
The two files are one shared slot.  Two overlapping requests would clear
each other's answers, so the broker holds an ``asyncio.Lock`` for the whole
cycle: later requests queue in arrival order, or, with
``reject_when_busy=True``, fail fast with :class:`BrokerBusyError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from core.config import PollPolicy, default_poll_policies
from core.mixer.fx_protocol import (
    build_result,
    format_param_write,
    format_request,
    has_complete_line,
)
from core.mixer.types import BypassCommand, FxCommand, FxRequest, RequestKind
from infrastructure.metrics import LatencyTimer, record_fx_request
from ingestion.fx_channel import FxFileChannel

logger = logging.getLogger(__name__)

Publisher = Callable[[dict[str, Any]], Awaitable[None]]
Sleeper = Callable[[float], Awaitable[None]]


class BrokerBusyError(RuntimeError):
    """Raised when a request arrives while another is in flight and queueing is off.

    Args:
        kind: Kind of the rejected request.
    """

    def __init__(self, kind: RequestKind) -> None:
        """Initialize with the rejected request kind."""
        self.kind = kind
        super().__init__(f"FX broker busy: {kind.value} request rejected")


@dataclass
class PendingPoll:
    """Poll state of the one request currently owed a response."""

    kind: RequestKind
    max_attempts: int
    interval_seconds: float
    attempts_elapsed: int = 0
    resolved: bool = False

    @classmethod
    def for_policy(cls, kind: RequestKind, policy: PollPolicy) -> PendingPoll:
        return cls(
            kind=kind,
            max_attempts=policy.max_attempts,
            interval_seconds=policy.interval_seconds,
        )

    @property
    def exhausted(self) -> bool:
        return self.attempts_elapsed >= self.max_attempts


class FxRequestBroker:
    """Serialises FX requests over the shared command/response files.

    Args:
        channel: The command/response file pair.
        publish: Coroutine that delivers a result to every client
            (normally :meth:`ConnectionRegistry.broadcast`).
        policies: Polling budget per request kind. Defaults to 10 ticks
            for bypass toggles and 20 for reads, 50 ms apart.
        reject_when_busy: Fail fast instead of queueing behind an
            in-flight request.
        sleep: Awaitable delay between ticks. Injected by tests.

    Example::

        broker = FxRequestBroker(channel, registry.broadcast)
        result = await broker.read_full(3)   # None on timeout
    """

    def __init__(
        self,
        channel: FxFileChannel,
        publish: Publisher,
        policies: dict[RequestKind, PollPolicy] | None = None,
        *,
        reject_when_busy: bool = False,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize the broker with an idle lock."""
        self._channel = channel
        self._publish = publish
        self._policies = policies or default_poll_policies()
        self._reject_when_busy = reject_when_busy
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._pending: PendingPoll | None = None

    @property
    def busy(self) -> bool:
        """True while a request holds the channel."""
        return self._lock.locked()

    @property
    def pending(self) -> PendingPoll | None:
        """Poll state of the in-flight request, if any."""
        return self._pending

    # ── Fire-and-forget ─────────────────────────────────────────────────────

    def write_param(self, command: FxCommand) -> bool:
        """Append a parameter write. No response is expected.

        The write does not take the request lock: it never touches the
        response file, so it cannot corrupt an in-flight read.

        Returns:
            True if the line was written, False on a file error (logged).
        """
        line = format_param_write(command)
        try:
            self._channel.append_command(line)
        except OSError as exc:
            logger.error("FX command file error: %s", exc)
            return False
        logger.debug("→ FX: %s", line.strip())
        return True

    # ── Request kinds ───────────────────────────────────────────────────────

    async def toggle_bypass(self, command: BypassCommand) -> dict[str, Any] | None:
        """Toggle bypass of one FX slot and broadcast its new state."""
        return await self.request(FxRequest.bypass(command))

    async def read_output(self, track_idx: int) -> dict[str, Any] | None:
        """Read the output FX of a track and broadcast its values."""
        return await self.request(FxRequest.output(track_idx))

    async def read_full(self, track_idx: int) -> dict[str, Any] | None:
        """Read every FX on a track and broadcast their values."""
        return await self.request(FxRequest.full(track_idx))

    async def read_all_sends(self) -> dict[str, Any] | None:
        """Read every send on every track and broadcast them grouped by track."""
        return await self.request(FxRequest.all_sends())

    async def request(self, request: FxRequest) -> dict[str, Any] | None:
        """Run one request cycle under the single-flight lock.

        Returns:
            The broadcast result dict, or ``None`` on timeout or file error.

        Raises:
            BrokerBusyError: If ``reject_when_busy`` is set and a request is
                already in flight.
        """
        if self._reject_when_busy and self._lock.locked():
            record_fx_request(kind=request.kind.value, outcome="busy")
            raise BrokerBusyError(request.kind)
        async with self._lock:
            try:
                return await self._execute(request)
            finally:
                self._pending = None

    # ── Internals ───────────────────────────────────────────────────────────

    async def _execute(self, request: FxRequest) -> dict[str, Any] | None:
        kind = request.kind.value
        line = format_request(request)
        try:
            self._channel.clear_response()
            self._channel.append_command(line)
        except OSError as exc:
            logger.error("FX %s command error: %s", kind, exc)
            record_fx_request(kind=kind, outcome="failed")
            return None
        logger.info("→ FX %s: %s", kind, line.strip())

        self._pending = PendingPoll.for_policy(request.kind, self._policies[request.kind])
        with LatencyTimer() as timer:
            try:
                content = await self._poll(self._pending)
            except OSError as exc:
                logger.error("FX %s response read error: %s", kind, exc)
                record_fx_request(kind=kind, outcome="failed")
                return None

        if content is None:
            if request.kind is RequestKind.FULL:
                logger.info("FX read timeout (track %s)", request.track_idx)
            else:
                logger.debug("FX %s timeout after %d ticks", kind, self._pending.attempts_elapsed)
            record_fx_request(kind=kind, outcome="timed_out")
            return None

        try:
            self._channel.clear_response()
        except OSError as exc:
            # Next request truncates before its own write
            logger.warning("FX response file not cleared: %s", exc)

        result = build_result(request, content).to_dict()
        await self._publish(result)
        record_fx_request(kind=kind, outcome="resolved", latency_seconds=timer.elapsed)
        self._log_result(request, result)
        return result

    async def _poll(self, pending: PendingPoll) -> str | None:
        """Tick until the response file holds a complete line or the budget runs out."""
        while not pending.exhausted:
            await self._sleep(pending.interval_seconds)
            pending.attempts_elapsed += 1
            content = self._channel.read_response()
            if has_complete_line(content):
                pending.resolved = True
                return content
        return None

    @staticmethod
    def _log_result(request: FxRequest, result: dict[str, Any]) -> None:
        if request.kind is RequestKind.SENDS:
            logger.info("← All Send Values: %d tracks", len(result["tracks"]))
        elif request.kind is RequestKind.BYPASS:
            logger.info("← FX Bypass state updated (track %s)", request.track_idx)
        else:
            logger.info("← FX Values: %d params (track %s)", len(result["params"]), request.track_idx)
