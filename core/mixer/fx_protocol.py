"""core/mixer/fx_protocol.py — Line grammar of the FX file channel.

The scripting host cannot speak OSC, so FX state travels through two plain
text files: the bridge appends commands to one and the host writes its
answers to the other.  This module owns both grammars.

Pure module — no I/O, no env vars, no imports from api/ or ingestion/.

Command lines (bridge → host)
─────────────────────────────
::

    <track>,<fx>,<param>,<value>    parameter write (no response)
    R,<track>                       read every FX on a track
    O,<track>                       read the output FX only
    B,<track>,<fx>                  toggle bypass of one FX slot
    SENDS                           read every send on every track

Response lines (host → bridge)
──────────────────────────────
::

    P,<track>,<fx>,<param>,<value>  parameter value
    E,<track>,<fx>,<flag>           enabled flag ("0" = bypassed)
    S,<track>,<send>,<volume>       send level

The track field of ``P`` and ``E`` lines is not used: the request already
names the track.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from core.mixer.types import (
    AllSendValues,
    EnabledRecord,
    FxCommand,
    FxRequest,
    FxValues,
    ParamRecord,
    RequestKind,
    ResponseRecord,
    ResponseTag,
    SendRecord,
)

logger = logging.getLogger(__name__)

# Tags each request kind consumes; everything else on the channel is ignored.
ACCEPTED_TAGS: dict[RequestKind, frozenset[ResponseTag]] = {
    RequestKind.BYPASS: frozenset({ResponseTag.ENABLED}),
    RequestKind.OUTPUT: frozenset({ResponseTag.PARAM, ResponseTag.ENABLED}),
    RequestKind.FULL: frozenset({ResponseTag.PARAM, ResponseTag.ENABLED}),
    RequestKind.SENDS: frozenset({ResponseTag.SEND}),
}


# ---------------------------------------------------------------------------
# Command formatting
# ---------------------------------------------------------------------------


def _format_value(value: float) -> str:
    """Render a value the way the host expects: ``1`` not ``1.0``, ``0.5`` as is."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def format_param_write(command: FxCommand) -> str:
    """Command line for a fire-and-forget parameter write."""
    return (
        f"{command.track_idx},{command.fx_idx},{command.param_idx},"
        f"{_format_value(command.value)}\n"
    )


def format_request(request: FxRequest) -> str:
    """Command line for a broker request.

    Raises:
        ValueError: If the request is missing an index its kind requires.
    """
    if request.kind is RequestKind.SENDS:
        return "SENDS\n"
    if request.track_idx is None:
        raise ValueError(f"{request.kind.value} request requires track_idx")
    if request.kind is RequestKind.FULL:
        return f"R,{request.track_idx}\n"
    if request.kind is RequestKind.OUTPUT:
        return f"O,{request.track_idx}\n"
    if request.fx_idx is None:
        raise ValueError("bypass request requires fx_idx")
    return f"B,{request.track_idx},{request.fx_idx}\n"


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def has_complete_line(content: str) -> bool:
    """True once the response holds at least one newline-terminated, non-blank line."""
    if "\n" not in content:
        return False
    complete, _, _ = content.rpartition("\n")
    return bool(complete.strip())


def _finite(field: str) -> float:
    value = float(field)
    if not math.isfinite(value):
        raise ValueError(f"non-finite value {field!r}")
    return value


def parse_response_line(line: str) -> ResponseRecord | None:
    """Parse one response line into a record.

    Returns ``None`` for blank lines, unknown tags, and malformed fields
    (non-finite values such as ``nan`` or ``inf`` included).
    """
    parts = line.strip().split(",")
    if not parts or not parts[0]:
        return None
    tag = parts[0]
    try:
        if tag == ResponseTag.PARAM.value:
            return ParamRecord(
                raw_track=parts[1],
                fx_idx=int(parts[2]),
                param_idx=int(parts[3]),
                value=_finite(parts[4]),
            )
        if tag == ResponseTag.ENABLED.value:
            return EnabledRecord(raw_track=parts[1], fx_idx=int(parts[2]), raw_flag=parts[3])
        if tag == ResponseTag.SEND.value:
            return SendRecord(
                track_idx=int(parts[1]),
                send_idx=int(parts[2]),
                volume=_finite(parts[3]),
            )
    except (IndexError, ValueError):
        logger.debug("Skipping malformed response line: %r", line)
        return None
    return None


def parse_response(content: str, kind: RequestKind) -> list[ResponseRecord]:
    """Parse every complete line of a response, keeping only the tags ``kind`` consumes.

    A trailing fragment with no newline is still being written by the host
    and is ignored.
    """
    accepted = {tag.value for tag in ACCEPTED_TAGS[kind]}
    complete, _, _ = content.rpartition("\n")
    records: list[ResponseRecord] = []
    for raw_line in complete.splitlines():
        line = raw_line.strip()
        if line.split(",", 1)[0] not in accepted:
            continue
        record = parse_response_line(line)
        if record is not None:
            records.append(record)
    return records


# ---------------------------------------------------------------------------
# Result building
# ---------------------------------------------------------------------------


def build_fx_values(track_idx: int | None, records: Iterable[ResponseRecord]) -> FxValues:
    """Fold ``P`` and ``E`` records into an :class:`FxValues` result.

    Parameters keep their response order.  A repeated ``E`` line for the
    same FX slot overwrites the earlier one.
    """
    params: list[ParamRecord] = []
    bypassed: dict[int, bool] = {}
    for record in records:
        if isinstance(record, ParamRecord):
            params.append(record)
        elif isinstance(record, EnabledRecord):
            bypassed[record.fx_idx] = record.bypassed
    return FxValues(track_idx=track_idx, params=tuple(params), bypassed=bypassed)


def build_all_send_values(records: Iterable[ResponseRecord]) -> AllSendValues:
    """Group ``S`` records by track index, preserving response order within a track."""
    grouped: dict[int, list[SendRecord]] = {}
    for record in records:
        if isinstance(record, SendRecord):
            grouped.setdefault(record.track_idx, []).append(record)
    return AllSendValues(tracks={track: tuple(sends) for track, sends in grouped.items()})


def build_result(request: FxRequest, content: str) -> FxValues | AllSendValues:
    """Parse a raw response and package it in the shape ``request.kind`` broadcasts."""
    records = parse_response(content, request.kind)
    if request.kind is RequestKind.SENDS:
        return build_all_send_values(records)
    return build_fx_values(request.track_idx, records)
