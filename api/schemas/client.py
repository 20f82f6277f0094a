"""
api/schemas/client.py — Pydantic models for inbound WebSocket messages.

Every client message is a JSON object tagged by ``type``.  The tags form a
closed set; :data:`ClientMessage` is a discriminated union, so an unknown
tag fails validation explicitly instead of being ignored.

Field names on the wire are camelCase (``trackIdx``); Python attributes are
snake_case.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from core.mixer.types import BypassCommand, ControlMessage, FxCommand, TypedArg


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TypedOscArg(_WireModel):
    """An OSC argument with an explicit type tag: ``{"type": "f", "value": 0.5}``."""

    type: Literal["i", "h", "f", "d", "s", "b", "c", "r", "m", "t", "T", "F", "N"]
    value: Any = None


OscArg = Union[bool, int, float, str, TypedOscArg]


class OscRelayMessage(_WireModel):
    """``osc`` — relay an OSC message to the mixer verbatim."""

    type: Literal["osc"]
    address: str = Field(..., min_length=1, pattern=r"^/")
    args: list[OscArg] = Field(default_factory=list)

    @field_validator("args", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def to_control_message(self) -> ControlMessage:
        args = tuple(
            TypedArg(type=a.type, value=a.value) if isinstance(a, TypedOscArg) else a
            for a in self.args
        )
        return ControlMessage(address=self.address, args=args)


class RefreshMessage(_WireModel):
    """``refresh`` — re-query every track from the mixer."""

    type: Literal["refresh"]


class FxWriteMessage(_WireModel):
    """``fx`` — fire-and-forget FX parameter write."""

    type: Literal["fx"]
    track_idx: int = Field(..., alias="trackIdx")
    fx_idx: int = Field(..., alias="fxIdx")
    param_idx: int = Field(..., alias="paramIdx")
    value: float

    def to_command(self) -> FxCommand:
        return FxCommand(self.track_idx, self.fx_idx, self.param_idx, self.value)


class FxBypassMessage(_WireModel):
    """``fxBypass`` — toggle bypass of one FX slot."""

    type: Literal["fxBypass"]
    track_idx: int = Field(..., alias="trackIdx")
    fx_idx: int = Field(..., alias="fxIdx")

    def to_command(self) -> BypassCommand:
        return BypassCommand(self.track_idx, self.fx_idx)


class FxReadOutputMessage(_WireModel):
    """``fxReadOutput`` — read the output FX of a track."""

    type: Literal["fxReadOutput"]
    track_idx: int = Field(..., alias="trackIdx")


class FxReadMessage(_WireModel):
    """``fxRead`` — read every FX on a track."""

    type: Literal["fxRead"]
    track_idx: int = Field(..., alias="trackIdx")


class SendsReadAllMessage(_WireModel):
    """``sendsReadAll`` — read every send on every track."""

    type: Literal["sendsReadAll"]


ClientMessage = Annotated[
    Union[
        OscRelayMessage,
        RefreshMessage,
        FxWriteMessage,
        FxBypassMessage,
        FxReadOutputMessage,
        FxReadMessage,
        SendsReadAllMessage,
    ],
    Field(discriminator="type"),
]

CLIENT_MESSAGE_TYPES: frozenset[str] = frozenset(
    {"osc", "refresh", "fx", "fxBypass", "fxReadOutput", "fxRead", "sendsReadAll"}
)

client_message_adapter: TypeAdapter[Any] = TypeAdapter(ClientMessage)


def parse_client_message(raw: str | bytes) -> Any:
    """Parse and validate one raw WebSocket frame.

    Raises:
        pydantic.ValidationError: On invalid JSON, an unknown ``type``,
            or missing/mistyped fields.
    """
    return client_message_adapter.validate_json(raw)
