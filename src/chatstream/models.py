"""
Defines the core Pydantic data models for the application.

These models are the data contract between the stream reducer, the turn engine
and the collaborator services. Field names are snake_case in Python and
camelCase on the wire, matching the chat endpoint's JSON.
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
Role = Literal[USER_ROLE, ASSISTANT_ROLE]

STREAMING = "streaming"
COMPLETE = "complete"
TextLifecycle = Literal[STREAMING, COMPLETE]

INPUT_STARTING = "input-starting"
INPUT_STREAMING = "input-streaming"
INPUT_READY = "input-ready"
OUTPUT_READY = "output-ready"
ToolLifecycle = Literal[INPUT_STARTING, INPUT_STREAMING, INPUT_READY, OUTPUT_READY]

# Tool lifecycles only ever advance along this order.
TOOL_LIFECYCLE_ORDER = (INPUT_STARTING, INPUT_STREAMING, INPUT_READY, OUTPUT_READY)

IMAGE_MEDIA_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
}
DEFAULT_MEDIA_TYPE = "image/jpeg"
DEFAULT_FILENAME = "image.jpg"


def _new_message_id() -> str:
    return f"msg-{uuid.uuid4().hex}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Parts ---
class _Part(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class TextPart(_Part):
    """Assistant or user text, appended to delta by delta while streaming."""

    type: Literal["text"] = "text"
    text: str = ""
    lifecycle: TextLifecycle = COMPLETE


class ReasoningPart(_Part):
    """Model reasoning, streamed between reasoning-start and reasoning-end."""

    type: Literal["reasoning"] = "reasoning"
    text: str = ""
    lifecycle: TextLifecycle = COMPLETE


class ToolPart(_Part):
    """A single tool call, identified by its call id within a message."""

    type: Literal["tool"] = "tool"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field("", alias="toolName")
    input: Optional[Any] = None
    output: Optional[Any] = None
    lifecycle: ToolLifecycle = INPUT_STARTING


class FilePart(_Part):
    """A reference to uploaded content. Always complete."""

    type: Literal["file"] = "file"
    url: str
    media_type: Optional[str] = Field(None, alias="mediaType")
    filename: Optional[str] = None
    lifecycle: Literal[COMPLETE] = COMPLETE


Part = Annotated[
    Union[TextPart, ReasoningPart, ToolPart, FilePart], Field(discriminator="type")
]


# --- Models ---
class Message(BaseModel):
    """Represents a single turn within a conversation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Role
    parts: List[Part] = Field(default_factory=list)
    id: str = Field(default_factory=_new_message_id)
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")

    @property
    def text(self) -> str:
        """The concatenated text of all text parts."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))


class Chat(BaseModel):
    """A chat record as issued by the chat-record service."""

    id: str


# --- Helpers ---
def filename_for(url: str) -> str:
    """Returns the last path segment of ``url``."""
    return url.split("/")[-1] or DEFAULT_FILENAME


def media_type_for(url_or_filename: str) -> str:
    """Infers an image media type from a url or filename extension."""
    filename = url_or_filename.split("?")[0].split("/")[-1]
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return IMAGE_MEDIA_TYPES.get(ext, DEFAULT_MEDIA_TYPE)


def has_content(parts: Iterable[Dict[str, Any]]) -> bool:
    """True when any part is non-blank text or a file with a url."""
    for part in parts:
        if part.get("type") == "text" and (part.get("text") or "").strip():
            return True
        if part.get("type") == "file" and part.get("url"):
            return True
    return False


def parts_from_input(parts: Iterable[Dict[str, Any]]) -> List[Union[TextPart, FilePart]]:
    """Converts submitted ``{type, text?, url?}`` dicts into complete parts.

    Parts of any other type, and file parts without a url, are skipped.
    """
    converted: List[Union[TextPart, FilePart]] = []
    for part in parts:
        if part.get("type") == "text":
            converted.append(TextPart(text=part.get("text") or ""))
        elif part.get("type") == "file" and part.get("url"):
            converted.append(
                FilePart(
                    url=part["url"],
                    media_type=part.get("mediaType") or part.get("media_type"),
                    filename=part.get("filename"),
                )
            )
    return converted


def build_request(messages: Iterable[Message]) -> Dict[str, Any]:
    """Builds the chat endpoint request body from the turn history.

    Only text and file parts are sent. File parts get an inferred media type
    and filename when they do not carry one.
    """
    payload = []
    for message in messages:
        parts = []
        for part in message.parts:
            if isinstance(part, TextPart):
                parts.append({"type": "text", "text": part.text})
            elif isinstance(part, FilePart):
                parts.append(
                    {
                        "type": "file",
                        "mediaType": part.media_type or media_type_for(part.url),
                        "filename": part.filename or filename_for(part.url),
                        "url": part.url,
                    }
                )
        payload.append({"role": message.role, "parts": parts})
    return {"messages": payload}
