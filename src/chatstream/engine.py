"""The turn engine: owns the transcript and drives one streamed turn at a time."""

import logging
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import EmptySubmissionError, StreamCancelled
from .models import (
    ASSISTANT_ROLE,
    Message,
    build_request,
    has_content,
    parts_from_input,
)
from .reducer import StreamState, finalize, reduce
from .sse import CancelToken, aiter_events, aiter_frames

logger = logging.getLogger(__name__)

IDLE = "idle"
SUBMITTED = "submitted"
STREAMING = "streaming"
READY = "ready"
ERROR = "error"

Transcript = Tuple[Message, ...]
Observer = Callable[[Transcript], None]


class Engine(ABC):
    """Interface for the turn engine.

    The engine is created without an app and bound to one later, so a custom
    engine can be passed to :class:`chatstream.ChatStream`.
    """

    def __init__(self, app: Optional[Any] = None):
        self.app = app

    @abstractmethod
    async def send_message(
        self, role: str, parts: List[Dict[str, Any]]
    ) -> Optional[Message]:
        """Appends a user turn and streams the assistant's reply."""
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Stops the in-flight turn, if any."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Empties the transcript and forgets the last error."""
        pass


class Streaming(Engine):
    """Streams each assistant turn into the transcript as events arrive.

    The transcript is a tuple of frozen messages that is replaced, never
    mutated, on every change. Observers registered with :meth:`subscribe`
    receive each new tuple, so any snapshot they keep stays valid.

    Parameters
    ----------
    app : ChatStream, optional
        The owning app; its ``transport`` and ``headers`` are used for
        requests.
    on_finish : Callable[[Message], None], optional
        Called with the final assistant message when a stream ends normally.
    on_error : Callable[[Exception], None], optional
        Called when a turn fails.
    """

    def __init__(
        self,
        app: Optional[Any] = None,
        on_finish: Optional[Callable[[Message], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        super().__init__(app)
        self.on_finish = on_finish
        self.on_error = on_error
        self.status = IDLE
        self.error: Optional[str] = None
        self.stream_state = StreamState()
        self._messages: Transcript = ()
        self._observers: List[Observer] = []
        self._token: Optional[CancelToken] = None

    @property
    def messages(self) -> Transcript:
        return self._messages

    @property
    def is_loading(self) -> bool:
        return self.status in (SUBMITTED, STREAMING)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Registers ``observer`` and returns a function that removes it."""
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def set_messages(self, messages: Iterable[Message]) -> None:
        self._commit(tuple(messages))

    def clear(self) -> None:
        self.error = None
        self._commit(())

    def cancel(self) -> None:
        if self._token is not None:
            logger.debug("Cancelling in-flight turn")
            self._token.cancel()

    async def send_message(self, role, parts):
        """Appends a user turn and streams the assistant's reply into the transcript.

        Parameters
        ----------
        role : str
            Role of the submitted turn, normally ``"user"``.
        parts : List[Dict[str, Any]]
            Content parts as ``{"type": "text", "text": ...}`` or
            ``{"type": "file", "url": ...}`` dicts.

        Returns
        -------
        Optional[Message]
            The final assistant message, or ``None`` if the turn was cancelled
            before the response arrived.

        Raises
        ------
        EmptySubmissionError
            If no part has text or a file url. Nothing is sent.
        TransportError, StreamDecodeError
            If the request or the stream fails. The partial assistant message
            stays in the transcript, completed. Any other exception raised
            while streaming, by an observer for instance, ends the turn the
            same way.
        """
        if not has_content(parts):
            exc = EmptySubmissionError()
            self.error = str(exc)
            self.status = ERROR
            raise exc

        self.status = SUBMITTED
        self.error = None
        self.cancel()
        token = self._token = CancelToken()
        state = self.stream_state = StreamState()

        user_message = Message(role=role, parts=parts_from_input(parts))
        self._commit(self._messages + (user_message,))
        payload = build_request(self._messages)
        logger.info("Starting turn after %s", user_message.id)

        assistant_id = None
        try:
            async with AsyncExitStack() as stack:
                token.raise_if_cancelled()
                chunks = await token.wait_for(
                    stack.enter_async_context(
                        self.app.transport.open_stream(
                            payload, headers=self.app.headers
                        )
                    )
                )
                token.raise_if_cancelled()
                assistant = Message(role=ASSISTANT_ROLE)
                assistant_id = assistant.id
                self._commit(self._messages + (assistant,))
                self.status = STREAMING
                async for event in aiter_events(aiter_frames(chunks, token)):
                    token.raise_if_cancelled()
                    self._update(assistant_id, lambda m: reduce(m, event, state))
            # A cancel that lands with the last chunk still cancels the turn.
            token.raise_if_cancelled()

            message = self._finalize(assistant_id)
            self.status = READY
            if message is None:
                # The transcript was cleared while the turn was streaming.
                return None
            logger.info("Turn finished with %d parts", len(message.parts))
            if self.on_finish:
                self.on_finish(message)
            return message
        except StreamCancelled:
            logger.warning("Turn cancelled")
            message = self._finalize(assistant_id)
            if self._token is token:
                self.status = READY
            return message
        except Exception as e:
            logger.error(f"Turn failed: {e}")
            self._finalize(assistant_id)
            if self._token is token:
                self.error = str(e)
                self.status = ERROR
            if self.on_error:
                self.on_error(e)
            raise
        finally:
            # Also reached when the caller's task is cancelled.
            self._finalize(assistant_id)
            if self._token is token:
                self._token = None
                if self.status in (SUBMITTED, STREAMING):
                    self.status = READY

    def _finalize(self, message_id: Optional[str]) -> Optional[Message]:
        if message_id is None:
            return None
        return self._update(message_id, finalize)

    def _update(
        self, message_id: str, fn: Callable[[Message], Message]
    ) -> Optional[Message]:
        for idx in range(len(self._messages) - 1, -1, -1):
            current = self._messages[idx]
            if current.id == message_id:
                updated = fn(current)
                if updated is not current:
                    self._commit(
                        self._messages[:idx] + (updated,) + self._messages[idx + 1 :]
                    )
                return updated
        return None

    def _commit(self, messages: Transcript) -> None:
        self._messages = messages
        for observer in list(self._observers):
            observer(messages)
