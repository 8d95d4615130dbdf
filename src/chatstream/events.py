"""Typed events carried by the chat endpoint's event stream.

Every data frame is a JSON object with a ``type`` discriminator. Known types
validate into one of the models below; anything else becomes an
:class:`UnknownEvent`, which the reducer ignores.
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Start(_Event):
    type: Literal["start"] = "start"


class StartStep(_Event):
    type: Literal["start-step"] = "start-step"


class FinishStep(_Event):
    type: Literal["finish-step"] = "finish-step"


class Finish(_Event):
    type: Literal["finish"] = "finish"


class TextDelta(_Event):
    type: Literal["text-delta"] = "text-delta"
    delta: str


class ReasoningStart(_Event):
    type: Literal["reasoning-start"] = "reasoning-start"


class ReasoningDelta(_Event):
    type: Literal["reasoning-delta"] = "reasoning-delta"
    delta: str


class ReasoningEnd(_Event):
    type: Literal["reasoning-end"] = "reasoning-end"


class ToolInputStart(_Event):
    type: Literal["tool-input-start"] = "tool-input-start"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")


class ToolInputDelta(_Event):
    type: Literal["tool-input-delta"] = "tool-input-delta"
    tool_call_id: str = Field(alias="toolCallId")
    delta: str


class ToolInputAvailable(_Event):
    type: Literal["tool-input-available"] = "tool-input-available"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: Optional[str] = Field(None, alias="toolName")
    input: Any


class ToolOutputAvailable(_Event):
    type: Literal["tool-output-available"] = "tool-output-available"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: Optional[str] = Field(None, alias="toolName")
    output: Any


class UnknownEvent(_Event):
    """An event type this client does not know about."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: str


KnownEvent = Annotated[
    Union[
        Start,
        StartStep,
        FinishStep,
        Finish,
        TextDelta,
        ReasoningStart,
        ReasoningDelta,
        ReasoningEnd,
        ToolInputStart,
        ToolInputDelta,
        ToolInputAvailable,
        ToolOutputAvailable,
    ],
    Field(discriminator="type"),
]
Event = Union[KnownEvent, UnknownEvent]

KNOWN_EVENT_TYPES = frozenset(
    {
        "start",
        "start-step",
        "finish-step",
        "finish",
        "text-delta",
        "reasoning-start",
        "reasoning-delta",
        "reasoning-end",
        "tool-input-start",
        "tool-input-delta",
        "tool-input-available",
        "tool-output-available",
    }
)

_known_event_adapter = TypeAdapter(KnownEvent)


def event_from_payload(payload: Dict[str, Any]) -> Event:
    """Validates a decoded frame payload into a typed event.

    Raises
    ------
    pydantic.ValidationError
        If the payload has a known type but lacks one of its required fields,
        or has no string ``type`` at all.
    """
    if payload.get("type") in KNOWN_EVENT_TYPES:
        return _known_event_adapter.validate_python(payload)
    return UnknownEvent.model_validate(payload)
