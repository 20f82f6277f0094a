"""
ingestion/control_surface.py — OSC bridge to the mixer's control surface.

The mixer exposes its tracks over OSC/UDP.  This module is the I/O
boundary for that traffic in both directions:

    client JSON ──send()──────────────► UDP → mixer (control_surface_port)
    mixer → UDP (local_osc_port) ──────► on_control_surface_message() ──► broadcast

Port convention (matches the mixer's OSC device setup):
    9000  bridge → mixer   [send]
    8000  mixer → bridge   [receive]

Inbound arguments keep their OSC type tag and are broadcast as
``{"type": <tag>, "value": <value>}``, the same shape clients may use when
sending.  Packets that fail to decode are logged and counted.

Every send is fire-and-forget: no acknowledgement, no retry.  Encoding and
socket errors are logged and counted, never raised, so a bad message from
one client can never close another client's connection.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from pythonosc.osc_message import OscMessage
from pythonosc.osc_message_builder import BuildError, OscMessageBuilder
from pythonosc.osc_packet import OscPacket, ParseError
from pythonosc.parsing import osc_types
from pythonosc.udp_client import SimpleUDPClient

from core.mixer.refresh import DEFAULT_TRACK_COUNT, refresh_messages
from core.mixer.types import ControlMessage, TypedArg
from infrastructure.metrics import record_osc_error, record_osc_message

logger = logging.getLogger(__name__)

Publisher = Callable[[dict[str, Any]], Awaitable[Any]]

_DEFAULT_HOST = "127.0.0.1"
_DEFAULT_PORT = 9000
_DEFAULT_LISTEN_HOST = "0.0.0.0"
_DEFAULT_LISTEN_PORT = 8000


def build_osc_message(message: ControlMessage) -> OscMessage:
    """
    Encode a :class:`ControlMessage` as an OSC packet.

    Plain values get their type inferred (int → ``i``, float → ``f``,
    str → ``s``, bool → ``T``/``F``).  :class:`TypedArg` values keep the
    tag the client asked for, so ``{"type": "f", "value": 1}`` goes out as
    float 1.0 rather than int 1.

    Raises:
        ValueError: On an unsupported type tag or value.
        BuildError: If the packet cannot be assembled.
    """
    builder = OscMessageBuilder(address=message.address)
    for arg in message.args:
        if isinstance(arg, TypedArg):
            builder.add_arg(arg.value, arg.type)
        else:
            builder.add_arg(arg)
    return builder.build()


# Tags python-osc decodes into a parameter; anything else carries no value.
_VALUE_TAGS = frozenset("ihfdsbrmtTFN")


def _top_level_tags(tags: str) -> list[str]:
    """One tag per top-level parameter; an array counts once as ``[``."""
    result: list[str] = []
    depth = 0
    for tag in tags:
        if tag == "[":
            if depth == 0:
                result.append("[")
            depth += 1
        elif tag == "]":
            depth -= 1
        elif depth == 0 and tag in _VALUE_TAGS:
            result.append(tag)
    return result


def _infer_tag(value: Any) -> str:
    if isinstance(value, bool):
        return "T" if value else "F"
    if value is None:
        return "N"
    if isinstance(value, int):
        return "i"
    if isinstance(value, float):
        return "f"
    if isinstance(value, (bytes, bytearray)):
        return "b"
    if isinstance(value, list):
        return "["
    return "s"


def _jsonable(value: Any) -> Any:
    """Map a decoded OSC value onto something ``json.dumps`` accepts."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (bytes, bytearray)):
        return list(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def control_message_from_osc(message: OscMessage) -> ControlMessage:
    """
    Convert a decoded OSC message into a :class:`ControlMessage` of typed args.

    Each argument becomes ``TypedArg(tag, value)`` with the tag read from the
    packet's type tag string.  Values are made JSON-safe: blobs become lists
    of byte values, time tags ISO strings, and non-finite floats ``None``.
    """
    params = message.params
    tags: list[str] = []
    if params:
        _, index = osc_types.get_string(message.dgram, 0)
        type_tag, _ = osc_types.get_string(message.dgram, index)
        tags = _top_level_tags(type_tag[1:])
    if len(tags) != len(params):
        tags = [_infer_tag(p) for p in params]
    return ControlMessage(
        message.address,
        tuple(TypedArg(tag, _jsonable(p)) for tag, p in zip(tags, params)),
    )


class ControlSurfaceTranslator:
    """
    Translates between client JSON and OSC packets.

    Usage:
        translator = ControlSurfaceTranslator(registry.broadcast)
        await translator.start()
        translator.send(ControlMessage("/track/1/volume", (0.7,)))
    """

    def __init__(
        self,
        publish: Publisher,
        host: str = _DEFAULT_HOST,
        port: int = _DEFAULT_PORT,
        *,
        listen_host: str = _DEFAULT_LISTEN_HOST,
        listen_port: int = _DEFAULT_LISTEN_PORT,
        refresh_track_count: int = DEFAULT_TRACK_COUNT,
        client: SimpleUDPClient | None = None,
    ) -> None:
        """
        Initialize the translator.

        Args:
            publish: Coroutine delivering a dict to every client.
            host: Address of the mixer's OSC receiver.
            port: UDP port the mixer listens on (default 9000).
            listen_host: Local bind address for mixer feedback.
            listen_port: Local UDP port for mixer feedback (default 8000).
            refresh_track_count: Tracks queried by :meth:`full_refresh`.
            client: Pre-built UDP client (tests inject a mock).
        """
        self._publish = publish
        self._host = host
        self._port = port
        self._listen_host = listen_host
        self._listen_port = listen_port
        self._refresh_track_count = refresh_track_count
        self._client = client if client is not None else SimpleUDPClient(host, port)
        self._transport: asyncio.BaseTransport | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def listening(self) -> bool:
        return self._transport is not None

    # ── Outbound ────────────────────────────────────────────────────────────

    def send(self, message: ControlMessage) -> bool:
        """Send one OSC message to the mixer.

        Returns:
            True if the datagram was handed to the socket, False on error (logged).
        """
        try:
            packet = build_osc_message(message)
            self._client.send(packet)
        except (ValueError, TypeError, BuildError) as exc:
            logger.warning("OSC encode error for %s: %s", message.address, exc)
            record_osc_error("out")
            return False
        except OSError as exc:
            logger.error("OSC send error for %s: %s", message.address, exc)
            record_osc_error("out")
            return False
        record_osc_message("out")
        return True

    def full_refresh(self) -> int:
        """Query volume, pan, mute, solo and name of every track.

        The mixer answers asynchronously through the inbound path; nothing
        here waits for or correlates the answers.

        Returns:
            Number of queries sent successfully.
        """
        messages = refresh_messages(self._refresh_track_count)
        sent = sum(1 for message in messages if self.send(message))
        logger.debug("Full refresh: %d/%d queries sent", sent, len(messages))
        return sent

    # ── Inbound ─────────────────────────────────────────────────────────────

    async def on_control_surface_message(self, message: ControlMessage) -> None:
        """Broadcast an OSC message from the mixer to every client."""
        logger.debug("← OSC: %s %s", message.address, list(message.args))
        record_osc_message("in")
        await self._publish(message.to_dict())

    def _handle_packet(self, data: bytes) -> None:
        """Decode one datagram and schedule a broadcast per contained message."""
        try:
            packet = OscPacket(data)
        except ParseError as exc:
            logger.warning("OSC parse error (%d bytes): %s", len(data), exc)
            record_osc_error("in")
            return
        loop = asyncio.get_running_loop()
        for timed in packet.messages:
            task = loop.create_task(
                self.on_control_surface_message(control_message_from_osc(timed.message))
            )
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("OSC broadcast failed: %s", exc, exc_info=exc)
            record_osc_error("in")

    async def start(self) -> bool:
        """Bind the inbound OSC listener.

        A bind failure is logged and the bridge keeps serving clients
        without mixer feedback.

        Returns:
            True if the listener is bound.
        """
        if self._transport is not None:
            return True
        loop = asyncio.get_running_loop()
        try:
            self._transport, _ = await loop.create_datagram_endpoint(
                lambda: _ControlSurfaceProtocol(self),
                local_addr=(self._listen_host, self._listen_port),
            )
        except OSError as exc:
            logger.error(
                "OSC listener error on %s:%d: %s", self._listen_host, self._listen_port, exc
            )
            record_osc_error("in")
            return False
        logger.info("OSC from mixer: listening on %s:%d", self._listen_host, self._listen_port)
        logger.info("OSC to mixer: %s:%d", self._host, self._port)
        return True

    @property
    def local_address(self) -> tuple[str, int] | None:
        """Bound ``(host, port)`` of the listener, or None when not listening."""
        if self._transport is None:
            return None
        return self._transport.get_extra_info("sockname")[:2]

    def stop(self) -> None:
        """Close the inbound listener. Safe to call when not started."""
        if self._transport is not None:
            self._transport.close()
            self._transport = None


class _ControlSurfaceProtocol(asyncio.DatagramProtocol):
    """Feeds received datagrams to the translator."""

    def __init__(self, translator: ControlSurfaceTranslator) -> None:
        self._translator = translator

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._translator._handle_packet(data)

    def error_received(self, exc: Exception) -> None:
        logger.warning("OSC socket error: %s", exc)
        record_osc_error("in")
