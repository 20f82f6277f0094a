"""
Inbound message dispatch — routes validated client messages.

Routing table (by ``type``):
    osc           → ControlSurfaceTranslator.send        (UDP, fire-and-forget)
    refresh       → ControlSurfaceTranslator.full_refresh
    fx            → FxRequestBroker.write_param          (file append, no response)
    fxBypass      → FxRequestBroker.toggle_bypass        (background task)
    fxReadOutput  → FxRequestBroker.read_output          (background task)
    fxRead        → FxRequestBroker.read_full            (background task)
    sendsReadAll  → FxRequestBroker.read_all_sends       (background task)

Broker requests poll for up to a second, so they run as tasks: the
WebSocket receive loop keeps reading while a read is pending, and the
broker's lock queues overlapping requests.

Invalid messages are dropped without any reply to the client; the drop is
logged and counted under ``mixer_dropped_messages_total``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

from pydantic import ValidationError

from api.schemas.client import (
    FxBypassMessage,
    FxReadMessage,
    FxReadOutputMessage,
    FxWriteMessage,
    OscRelayMessage,
    RefreshMessage,
    SendsReadAllMessage,
    parse_client_message,
)
from infrastructure.metrics import record_client_message, record_dropped_message
from ingestion.control_surface import ControlSurfaceTranslator
from ingestion.fx_broker import BrokerBusyError, FxRequestBroker

logger = logging.getLogger(__name__)

_DROP_REASONS: dict[str, str] = {
    "json_invalid": "invalid_json",
    "union_tag_invalid": "unknown_type",
    "union_tag_not_found": "unknown_type",
}


def drop_reason(exc: ValidationError) -> str:
    """Classify a validation failure for the dropped-message counter."""
    for error in exc.errors():
        reason = _DROP_REASONS.get(error["type"])
        if reason:
            return reason
    return "invalid_fields"


class MessageDispatcher:
    """Validates raw client frames and hands them to the translator or broker."""

    def __init__(self, translator: ControlSurfaceTranslator, broker: FxRequestBroker) -> None:
        """Initialize with the two downstream components."""
        self._translator = translator
        self._broker = broker
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_tasks(self) -> int:
        """Broker requests spawned and not finished yet."""
        return len(self._tasks)

    async def handle_raw(self, raw: str | bytes) -> bool:
        """Validate and dispatch one WebSocket frame.

        Returns:
            True if the message was dispatched, False if it was dropped.
        """
        try:
            message = parse_client_message(raw)
        except ValidationError as exc:
            reason = drop_reason(exc)
            record_dropped_message(reason)
            logger.warning("Invalid WebSocket message (%s): %s", reason, exc.errors()[0]["msg"])
            return False
        record_client_message(message.type)
        self.dispatch(message)
        return True

    def dispatch(self, message: Any) -> None:
        """Route an already-validated message."""
        if isinstance(message, OscRelayMessage):
            control = message.to_control_message()
            logger.info("→ OSC: %s %s", control.address, list(control.args))
            self._translator.send(control)
        elif isinstance(message, RefreshMessage):
            self._translator.full_refresh()
        elif isinstance(message, FxWriteMessage):
            self._broker.write_param(message.to_command())
        elif isinstance(message, FxBypassMessage):
            self._spawn(self._broker.toggle_bypass(message.to_command()))
        elif isinstance(message, FxReadOutputMessage):
            self._spawn(self._broker.read_output(message.track_idx))
        elif isinstance(message, FxReadMessage):
            self._spawn(self._broker.read_full(message.track_idx))
        elif isinstance(message, SendsReadAllMessage):
            self._spawn(self._broker.read_all_sends())
        else:
            raise TypeError(f"Unroutable message: {type(message).__name__}")

    async def drain(self) -> None:
        """Wait for every spawned broker request to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, request: Awaitable[Any]) -> None:
        task = asyncio.get_running_loop().create_task(self._run_request(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run_request(request: Awaitable[Any]) -> None:
        try:
            await request
        except BrokerBusyError as exc:
            logger.warning("%s", exc)
        except Exception:  # noqa: BLE001
            logger.exception("FX request failed")
