"""Prometheus metrics for the live mixer bridge.

Most failure paths in the bridge are silent toward clients (a timed-out FX
read simply produces no update).  These counters are where those silent
outcomes become visible.

Metrics:
    mixer_client_messages_total        Counter of accepted client messages by type
    mixer_dropped_messages_total       Counter of dropped client messages by reason
    mixer_osc_messages_total           Counter of OSC messages by direction (in/out)
    mixer_osc_errors_total             Counter of OSC encode/socket errors by direction
    mixer_fx_requests_total            Counter of FX broker requests by kind and outcome
    mixer_fx_request_latency_seconds   Histogram of FX request latency by kind
    mixer_connected_clients            Gauge of open WebSocket clients

Usage::

    from infrastructure.metrics import record_fx_request, record_dropped_message
"""

from __future__ import annotations

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_REGISTRY = CollectorRegistry()

client_messages_total = Counter(
    "mixer_client_messages_total",
    "Client messages accepted by type",
    ["type"],
    registry=_REGISTRY,
)

dropped_messages_total = Counter(
    "mixer_dropped_messages_total",
    "Client messages dropped by reason (invalid_json, unknown_type, invalid_fields)",
    ["reason"],
    registry=_REGISTRY,
)

osc_messages_total = Counter(
    "mixer_osc_messages_total",
    "OSC messages by direction",
    ["direction"],
    registry=_REGISTRY,
)

osc_errors_total = Counter(
    "mixer_osc_errors_total",
    "OSC encode or socket errors by direction",
    ["direction"],
    registry=_REGISTRY,
)

fx_requests_total = Counter(
    "mixer_fx_requests_total",
    "FX broker requests by kind and outcome (resolved, timed_out, failed, busy)",
    ["kind", "outcome"],
    registry=_REGISTRY,
)

fx_request_latency_seconds = Histogram(
    "mixer_fx_request_latency_seconds",
    "FX broker request latency in seconds (resolved requests only)",
    ["kind"],
    buckets=[0.05, 0.1, 0.2, 0.35, 0.5, 0.75, 1.0, 2.0],
    registry=_REGISTRY,
)

connected_clients = Gauge(
    "mixer_connected_clients",
    "Currently registered WebSocket clients",
    registry=_REGISTRY,
)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def record_client_message(message_type: str) -> None:
    """Increment the accepted-message counter for ``message_type``."""
    client_messages_total.labels(type=message_type).inc()


def record_dropped_message(reason: str) -> None:
    """Increment the dropped-message counter.

    Args:
        reason: One of "invalid_json", "unknown_type", "invalid_fields".
    """
    dropped_messages_total.labels(reason=reason).inc()


def record_osc_message(direction: str) -> None:
    """Increment the OSC traffic counter. ``direction`` is "in" or "out"."""
    osc_messages_total.labels(direction=direction).inc()


def record_osc_error(direction: str) -> None:
    """Increment the OSC error counter. ``direction`` is "in" or "out"."""
    osc_errors_total.labels(direction=direction).inc()


def record_fx_request(
    *,
    kind: str,
    outcome: str,
    latency_seconds: float | None = None,
) -> None:
    """Record a finished FX broker request.

    Args:
        kind: Request kind ("bypass", "output", "full", "sends").
        outcome: One of "resolved", "timed_out", "failed", "busy".
        latency_seconds: Wall-clock time from command write to resolution.
            Only observed for resolved requests.
    """
    fx_requests_total.labels(kind=kind, outcome=outcome).inc()
    if latency_seconds is not None and outcome == "resolved":
        fx_request_latency_seconds.labels(kind=kind).observe(latency_seconds)


def set_connected_clients(count: int) -> None:
    """Set the connected-clients gauge."""
    connected_clients.set(count)


def get_metrics_response() -> tuple[bytes, str]:
    """Generate Prometheus text exposition format.

    Returns:
        Tuple of (body_bytes, content_type_string).
    """
    return generate_latest(_REGISTRY), CONTENT_TYPE_LATEST


class LatencyTimer:
    """Context manager for measuring latency.

    Usage::

        with LatencyTimer() as t:
            content = await poll()
        record_fx_request(kind="full", outcome="resolved", latency_seconds=t.elapsed)
    """

    def __init__(self) -> None:
        """Initialize timer."""
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> LatencyTimer:
        """Start timing."""
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: object) -> None:
        """Stop timing and record elapsed."""
        self.elapsed = time.perf_counter() - self._start
