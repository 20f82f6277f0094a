"""
OSC WebSocket route — ``/osc``.

One long-lived connection per control page.  Lifecycle:

    accept → register (triggers a full refresh) → receive loop → unregister

A malformed frame is dropped by the dispatcher; the connection stays open.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from api.deps import Bridge, get_bridge

logger = logging.getLogger(__name__)

router = APIRouter(tags=["osc"])

BridgeDep = Annotated[Bridge, Depends(get_bridge)]


@router.websocket("/osc")
async def osc_socket(websocket: WebSocket, bridge: BridgeDep) -> None:
    """Relay client control messages and receive every broadcast."""
    await websocket.accept()
    bridge.registry.register(websocket)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text")
            if raw is None:
                raw = frame.get("bytes") or b""
            await bridge.dispatcher.handle_raw(raw)
    except WebSocketDisconnect:
        pass
    finally:
        bridge.registry.unregister(websocket)
