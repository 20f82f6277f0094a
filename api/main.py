from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.responses import Response

from api.deps import Bridge, get_bridge
from api.routes.osc import router as osc_router
from infrastructure.metrics import get_metrics_response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Bind the inbound OSC listener for the lifetime of the server."""
    provider = app.dependency_overrides.get(get_bridge, get_bridge)
    bridge: Bridge = provider()
    await bridge.translator.start()
    try:
        yield
    finally:
        bridge.translator.stop()
        await bridge.dispatcher.drain()


app = FastAPI(title="Live Mixer Bridge", lifespan=lifespan)

app.include_router(osc_router)


@app.get("/health")
def health(bridge: Annotated[Bridge, Depends(get_bridge)]) -> dict[str, object]:
    """Return a liveness check with the number of connected clients."""
    return {
        "status": "ok",
        "clients": len(bridge.registry),
        "osc_listening": bridge.translator.listening,
        "fx_busy": bridge.broker.busy,
    }


@app.get("/metrics")
def metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns metrics in Prometheus text exposition format.
    """
    body, content_type = get_metrics_response()
    return Response(content=body, media_type=content_type)
