"""core/mixer/types.py — Immutable value objects for the live mixer bridge.

Three families of types cross the bridge:

    ControlMessage        ← OSC traffic (both directions)
    FxCommand / FxRequest → lines on the FX command file
    *Record               ← lines parsed from the FX response file

Every type is a frozen dataclass.  No I/O, no timestamps, no env vars.

Index conventions
─────────────────
``track_idx`` and ``fx_idx`` are passed through verbatim from the client to
the scripting host; the bridge never rebases them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RequestKind(str, Enum):
    """Request kinds served by the FX request broker."""

    BYPASS = "bypass"
    OUTPUT = "output"
    FULL = "full"
    SENDS = "sends"


class ResponseTag(str, Enum):
    """Leading tag of a line on the FX response file."""

    PARAM = "P"
    ENABLED = "E"
    SEND = "S"


# ---------------------------------------------------------------------------
# OSC
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TypedArg:
    """An OSC argument carrying an explicit type tag (``f``, ``i``, ``s``, ``T`` …)."""

    type: str
    value: Any = None


@dataclass(frozen=True)
class ControlMessage:
    """One OSC message: an address and its ordered argument list."""

    address: str
    args: tuple[Any, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Broadcast payload for connected clients.

        :class:`TypedArg` values render as ``{"type": ..., "value": ...}``.
        """
        args = [
            {"type": a.type, "value": a.value} if isinstance(a, TypedArg) else a
            for a in self.args
        ]
        return {"type": "osc", "address": self.address, "args": args}


# ---------------------------------------------------------------------------
# Commands (bridge → scripting host)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FxCommand:
    """A single fire-and-forget FX parameter write."""

    track_idx: int
    fx_idx: int
    param_idx: int
    value: float


@dataclass(frozen=True)
class BypassCommand:
    """Toggle the bypass state of one FX slot."""

    track_idx: int
    fx_idx: int


@dataclass(frozen=True)
class FxRequest:
    """A broker request: one command line that expects a response.

    Use the ``full`` / ``output`` / ``bypass`` / ``all_sends`` constructors
    rather than building instances by hand.
    """

    kind: RequestKind
    track_idx: int | None = None
    fx_idx: int | None = None

    @classmethod
    def full(cls, track_idx: int) -> FxRequest:
        return cls(RequestKind.FULL, track_idx)

    @classmethod
    def output(cls, track_idx: int) -> FxRequest:
        return cls(RequestKind.OUTPUT, track_idx)

    @classmethod
    def bypass(cls, command: BypassCommand) -> FxRequest:
        return cls(RequestKind.BYPASS, command.track_idx, command.fx_idx)

    @classmethod
    def all_sends(cls) -> FxRequest:
        return cls(RequestKind.SENDS)


# ---------------------------------------------------------------------------
# Response records (scripting host → bridge)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParamRecord:
    """``P,<track>,<fx>,<param>,<value>`` — one FX parameter value.

    ``raw_track`` is the unparsed track field.
    """

    raw_track: str
    fx_idx: int
    param_idx: int
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"fxIdx": self.fx_idx, "paramIdx": self.param_idx, "value": self.value}


@dataclass(frozen=True)
class EnabledRecord:
    """``E,<track>,<fx>,<flag>`` — enabled flag of one FX slot (``raw_track`` unparsed).

    The host reports *enabled*; clients want *bypassed*.  A raw flag of
    ``"0"`` means disabled, i.e. bypassed.  Any other flag means active.
    """

    raw_track: str
    fx_idx: int
    raw_flag: str

    @property
    def bypassed(self) -> bool:
        return self.raw_flag == "0"


@dataclass(frozen=True)
class SendRecord:
    """``S,<track>,<send>,<volume>`` — one send level."""

    track_idx: int
    send_idx: int
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {"sendIdx": self.send_idx, "vol": self.volume}


ResponseRecord = ParamRecord | EnabledRecord | SendRecord


# ---------------------------------------------------------------------------
# Results (broadcast to clients)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FxValues:
    """Parameter values and bypass states for one track."""

    track_idx: int | None
    params: tuple[ParamRecord, ...] = ()
    bypassed: dict[int, bool] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "fxValues",
            "trackIdx": self.track_idx,
            "params": [p.to_dict() for p in self.params],
            "bypassed": dict(self.bypassed),
        }


@dataclass(frozen=True)
class AllSendValues:
    """Send levels of every track, grouped by track index."""

    tracks: dict[int, tuple[SendRecord, ...]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "allSendValues",
            "tracks": {
                track: [s.to_dict() for s in sends] for track, sends in self.tracks.items()
            },
        }
