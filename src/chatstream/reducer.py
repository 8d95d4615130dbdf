"""The transcript state machine.

:func:`reduce` folds one stream event into the in-flight assistant message and
returns the next message. It never mutates its input: every change produces
new part and message objects, so a reader holding an earlier snapshot keeps
seeing exactly what it was given.

At most one text or reasoning part is ``streaming`` at a time. Opening any new
part closes it, and :func:`finalize` closes whatever is left when the stream
ends.
"""

import logging
from typing import Callable, Dict, List, Optional

from . import events as ev
from .models import (
    COMPLETE,
    INPUT_READY,
    INPUT_STARTING,
    INPUT_STREAMING,
    OUTPUT_READY,
    STREAMING,
    TOOL_LIFECYCLE_ORDER,
    Message,
    ReasoningPart,
    TextPart,
    ToolPart,
)

logger = logging.getLogger(__name__)


class StreamState:
    """Per-turn scratch space that is never shown in the transcript.

    Holds raw partial tool input, which is not valid JSON until the
    ``tool-input-available`` event, and an index of tool parts by call id.
    """

    def __init__(self):
        self.tool_inputs: Dict[str, str] = {}
        self.tool_index: Dict[str, int] = {}

    def partial_input(self, tool_call_id: str) -> Optional[str]:
        """The raw tool input received so far, or ``None``."""
        return self.tool_inputs.get(tool_call_id)


def _is_open(part) -> bool:
    return isinstance(part, (TextPart, ReasoningPart)) and part.lifecycle == STREAMING


def _close_open(parts: List) -> List:
    return [
        p.model_copy(update={"lifecycle": COMPLETE}) if _is_open(p) else p
        for p in parts
    ]


def _find_tool(parts: List, tool_call_id: str, state: Optional[StreamState]) -> int:
    if state is not None:
        idx = state.tool_index.get(tool_call_id)
        if (
            idx is not None
            and idx < len(parts)
            and isinstance(parts[idx], ToolPart)
            and parts[idx].tool_call_id == tool_call_id
        ):
            return idx
    for idx, part in enumerate(parts):
        if isinstance(part, ToolPart) and part.tool_call_id == tool_call_id:
            return idx
    return -1


def _advance(current: str, target: str) -> str:
    if TOOL_LIFECYCLE_ORDER.index(target) > TOOL_LIFECYCLE_ORDER.index(current):
        return target
    return current


def _with_parts(message: Message, parts: List) -> Message:
    return message.model_copy(update={"parts": parts})


# --- Clauses ---
def _noop(message, event, state):
    return message


def _text_delta(message, event, state):
    if not event.delta:
        return message
    parts = list(message.parts)
    last = parts[-1] if parts else None
    if isinstance(last, TextPart) and last.lifecycle == STREAMING:
        parts[-1] = last.model_copy(update={"text": last.text + event.delta})
    else:
        parts = _close_open(parts)
        parts.append(TextPart(text=event.delta, lifecycle=STREAMING))
    return _with_parts(message, parts)


def _reasoning_start(message, event, state):
    parts = _close_open(message.parts)
    parts.append(ReasoningPart(text="", lifecycle=STREAMING))
    return _with_parts(message, parts)


def _reasoning_delta(message, event, state):
    if not event.delta:
        return message
    parts = list(message.parts)
    for idx in range(len(parts) - 1, -1, -1):
        part = parts[idx]
        if isinstance(part, ReasoningPart) and part.lifecycle == STREAMING:
            parts[idx] = part.model_copy(update={"text": part.text + event.delta})
            return _with_parts(message, parts)
    logger.debug("Dropping reasoning-delta with no open reasoning part")
    return message


def _reasoning_end(message, event, state):
    if not any(
        isinstance(p, ReasoningPart) and p.lifecycle == STREAMING for p in message.parts
    ):
        return message
    parts = [
        p.model_copy(update={"lifecycle": COMPLETE})
        if isinstance(p, ReasoningPart) and p.lifecycle == STREAMING
        else p
        for p in message.parts
    ]
    return _with_parts(message, parts)


def _tool_input_start(message, event, state):
    parts = list(message.parts)
    idx = _find_tool(parts, event.tool_call_id, state)
    if idx != -1:
        # Never duplicate a call id; a repeated start only refreshes the name.
        if parts[idx].tool_name == event.tool_name:
            return message
        parts[idx] = parts[idx].model_copy(update={"tool_name": event.tool_name})
        return _with_parts(message, parts)
    parts = _close_open(parts)
    parts.append(
        ToolPart(
            tool_call_id=event.tool_call_id,
            tool_name=event.tool_name,
            lifecycle=INPUT_STARTING,
        )
    )
    if state is not None:
        state.tool_inputs[event.tool_call_id] = ""
        state.tool_index[event.tool_call_id] = len(parts) - 1
    return _with_parts(message, parts)


def _update_tool(message, tool_call_id, state, lifecycle, **updates):
    parts = list(message.parts)
    idx = _find_tool(parts, tool_call_id, state)
    if idx == -1:
        logger.debug("Dropping %s for unknown tool call %s", lifecycle, tool_call_id)
        return message
    part = parts[idx]
    updates["lifecycle"] = _advance(part.lifecycle, lifecycle)
    if all(getattr(part, k) == v for k, v in updates.items()):
        return message
    parts[idx] = part.model_copy(update=updates)
    return _with_parts(message, parts)


def _tool_input_delta(message, event, state):
    if state is not None and event.delta:
        state.tool_inputs[event.tool_call_id] = (
            state.tool_inputs.get(event.tool_call_id, "") + event.delta
        )
    return _update_tool(message, event.tool_call_id, state, INPUT_STREAMING)


def _tool_input_available(message, event, state):
    if state is not None:
        state.tool_inputs.pop(event.tool_call_id, None)
    updates = {"input": event.input}
    if event.tool_name:
        updates["tool_name"] = event.tool_name
    return _update_tool(message, event.tool_call_id, state, INPUT_READY, **updates)


def _tool_output_available(message, event, state):
    updates = {"output": event.output}
    if event.tool_name:
        updates["tool_name"] = event.tool_name
    return _update_tool(message, event.tool_call_id, state, OUTPUT_READY, **updates)


_Clause = Callable[[Message, ev.Event, Optional[StreamState]], Message]

_CLAUSES: Dict[str, _Clause] = {
    "start": _noop,
    "start-step": _noop,
    "finish-step": _noop,
    "finish": _noop,
    "text-delta": _text_delta,
    "reasoning-start": _reasoning_start,
    "reasoning-delta": _reasoning_delta,
    "reasoning-end": _reasoning_end,
    "tool-input-start": _tool_input_start,
    "tool-input-delta": _tool_input_delta,
    "tool-input-available": _tool_input_available,
    "tool-output-available": _tool_output_available,
}


def reduce(
    message: Message, event: ev.Event, state: Optional[StreamState] = None
) -> Message:
    """Applies one event to ``message`` and returns the resulting message.

    Returns ``message`` itself when the event changes nothing, including for
    unknown event types and tool events that reference an unknown call id.

    Parameters
    ----------
    message : Message
        The in-flight assistant message.
    event : Event
        A parsed stream event.
    state : StreamState, optional
        Scratch state for the current turn. Without it, partial tool input is
        not accumulated and tool parts are found by scanning.
    """
    clause = _CLAUSES.get(event.type, _noop)
    return clause(message, event, state)


def finalize(message: Message) -> Message:
    """Force-completes any streaming text or reasoning part.

    Tool parts keep their last lifecycle. Finalizing a message with nothing
    open returns the same object.
    """
    if not any(_is_open(p) for p in message.parts):
        return message
    return _with_parts(message, _close_open(message.parts))
