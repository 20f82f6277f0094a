"""
Connection registry — the set of open WebSocket clients.

Every message the bridge pushes (OSC echoes, FX values, send levels) goes
to every client through :meth:`ConnectionRegistry.broadcast`.  The registry
is the single owner of the client set; routes only register and unregister.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

from starlette.websockets import WebSocketState

from infrastructure.metrics import set_connected_clients

logger = logging.getLogger(__name__)


class ClientConnection(Protocol):
    """What the registry needs from a connection (satisfied by Starlette's ``WebSocket``)."""

    client_state: WebSocketState
    application_state: WebSocketState

    async def send_text(self, data: str) -> None: ...


def is_open(conn: ClientConnection) -> bool:
    """True while the connection is accepted and not yet closing."""
    return (
        conn.client_state == WebSocketState.CONNECTED
        and conn.application_state == WebSocketState.CONNECTED
    )


class ConnectionRegistry:
    """Lock-guarded, insertion-ordered set of client connections.

    Args:
        on_register: Called once per newly registered connection, after it
            has been added (wired to the full-refresh procedure).
    """

    def __init__(self, on_register: Callable[[], None] | None = None) -> None:
        """Initialize an empty registry."""
        self._clients: dict[int, ClientConnection] = {}
        self._lock = threading.Lock()
        self.on_register = on_register

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def __contains__(self, conn: object) -> bool:
        with self._lock:
            return id(conn) in self._clients

    def snapshot(self) -> list[ClientConnection]:
        """Registered connections in registration order."""
        with self._lock:
            return list(self._clients.values())

    def register(self, conn: ClientConnection) -> None:
        """Add a connection and trigger the on-register hook once for it."""
        with self._lock:
            if id(conn) in self._clients:
                return
            self._clients[id(conn)] = conn
            count = len(self._clients)
        set_connected_clients(count)
        logger.info("Web client connected (%d total)", count)
        if self.on_register is not None:
            self.on_register()

    def unregister(self, conn: ClientConnection) -> None:
        """Remove a connection. Unknown connections are ignored."""
        with self._lock:
            removed = self._clients.pop(id(conn), None)
            count = len(self._clients)
        if removed is not None:
            set_connected_clients(count)
            logger.info("Web client disconnected (%d total)", count)

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send ``message`` as JSON to every open connection.

        Connections that are not open are skipped.  A send that fails
        (peer gone mid-send) is logged and skipped; it never raises.
        A message that is not strict JSON (non-finite floats, bytes) is
        logged and delivered to nobody.

        Returns:
            Number of connections the message was delivered to.
        """
        try:
            payload = json.dumps(message, allow_nan=False)
        except (TypeError, ValueError) as exc:
            logger.error("Broadcast dropped, payload not JSON-serialisable: %s", exc)
            return 0
        delivered = 0
        for conn in self.snapshot():
            if not is_open(conn):
                continue
            try:
                await conn.send_text(payload)
            except Exception as exc:  # noqa: BLE001
                logger.debug("Broadcast to client failed: %s", exc)
                continue
            delivered += 1
        return delivered
