"""core/mixer/refresh.py — Full-refresh query batch.

The control surface answers an argument-less message on a track address by
echoing that track's current value.  Sending the whole batch primes every
connected client with fresh mixer state; the answers come back through the
normal inbound OSC path.
"""

from __future__ import annotations

from core.mixer.types import ControlMessage

DEFAULT_TRACK_COUNT = 32

# Query order per track.  Clients render in this order, keep it stable.
REFRESH_PROPERTIES: tuple[str, ...] = ("volume", "pan", "mute", "solo", "name")


def refresh_messages(track_count: int = DEFAULT_TRACK_COUNT) -> list[ControlMessage]:
    """Return the full-refresh query batch for tracks ``1..track_count``.

    The bound is fixed, not the project's real track count: the surface
    simply ignores queries for tracks it does not have.
    """
    return [
        ControlMessage(address=f"/track/{track}/{prop}")
        for track in range(1, track_count + 1)
        for prop in REFRESH_PROPERTIES
    ]
