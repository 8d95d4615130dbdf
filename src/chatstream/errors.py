"""Exception types raised by chatstream."""

from typing import Optional


class ChatStreamError(Exception):
    """Base class for all chatstream errors."""


class EmptySubmissionError(ChatStreamError):
    """Raised when a submission carries neither text nor an uploaded file."""

    def __init__(self, message: str = "Please enter a message or upload an image"):
        super().__init__(message)


class TransportError(ChatStreamError):
    """The chat endpoint could not be reached or answered with an error status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @classmethod
    def from_status(cls, status_code: int, body: str) -> "TransportError":
        return cls(f"Server error: {status_code} - {body}", status_code, body)


class StreamDecodeError(ChatStreamError):
    """The response body contained a malformed byte sequence."""


class StreamCancelled(ChatStreamError):
    """The read loop was stopped by its cancel token."""


class StoreError(ChatStreamError):
    """The chat-record service failed."""


class UploadError(ChatStreamError):
    """An asset could not be uploaded."""
