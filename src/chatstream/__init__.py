"""
The main entrypoint for the chatstream package.

This module contains the primary ChatStream class, which wires together the
extensible pillars: the transport that streams assistant replies, the engine
that folds them into the transcript, the chat-record store, and the asset
storage used for uploaded images.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from . import config, engine, storage, store, transport
from .errors import EmptySubmissionError, StoreError, UploadError
from .models import USER_ROLE, Chat, Message

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_PROMPT = "Please analyze this image"
CHAT_ID_HEADER = "X-Chat-Id"


class ChatStream:
    """
    A streaming chat client.

    The constructor uses concrete default implementations for every pillar,
    making it easy to get started while remaining fully customizable.
    """

    def __init__(
        self,
        transport: Optional["transport.Transport"] = None,
        store: Optional["store.Store"] = None,
        storage: Optional["storage.Storage"] = None,
        engine: Optional["engine.Engine"] = None,
        settings: Optional["config.Settings"] = None,
        on_finish: Optional[Callable[[Message], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        """
        Initialize the client with configurable pillars.

        Parameters
        ----------
        transport : transport.Transport, optional
            Streams replies from the chat endpoint.
            Defaults to transport.HTTP() pointed at ``settings.chat_url``.
        store : store.Store, optional
            Creates chat records and loads their history.
            Defaults to store.InMemory().
        storage : storage.Storage, optional
            Stores uploaded images.
            Defaults to storage.InMemory().
        engine : engine.Engine, optional
            Owns the transcript and runs turns.
            Defaults to engine.Streaming(). An engine created without an app
            is bound to this instance.
        settings : config.Settings, optional
            Endpoint locations and request headers.
            Defaults to config.Settings.from_env().
        on_finish, on_error : callable, optional
            Passed to the default engine.

        Examples
        --------
        Basic usage with defaults:

        >>> chat = ChatStream()

        Custom configuration:

        >>> chat = ChatStream(
        ...     settings=config.Settings(base_url="https://chat.example.com"),
        ...     store=store.HTTP("https://chat.example.com/api/v1/chats"),
        ... )
        """
        config_module = globals()["config"]
        transport_module = globals()["transport"]
        store_module = globals()["store"]
        storage_module = globals()["storage"]
        engine_module = globals()["engine"]

        self.settings = (
            settings if settings is not None else config_module.Settings.from_env()
        )
        self.transport = (
            transport
            if transport is not None
            else transport_module.HTTP(
                self.settings.chat_url, timeout=self.settings.timeout
            )
        )
        self.store = store if store is not None else store_module.InMemory()
        self.storage = storage if storage is not None else storage_module.InMemory()

        if engine is None:
            engine = engine_module.Streaming(on_finish=on_finish, on_error=on_error)
        if engine.app is None:
            engine.app = self
        self.engine = engine

        self.chat: Optional[Chat] = None
        self.pending_image_url: Optional[str] = None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            **self.settings.headers,
            CHAT_ID_HEADER: self.chat.id if self.chat else "",
        }

    @property
    def messages(self):
        return self.engine.messages

    async def new_chat(self) -> Chat:
        """Creates a chat record and makes it the current chat."""
        self.chat = await self.store.create_chat()
        return self.chat

    async def open_chat(self, chat_id: str) -> List[Message]:
        """Makes ``chat_id`` current and loads its history into the transcript.

        A failed fetch is logged and leaves the transcript as it was.
        """
        self.chat = Chat(id=chat_id)
        try:
            messages = await self.store.get_messages(chat_id)
        except StoreError as e:
            logger.warning(f"Failed to fetch messages for chat {chat_id}: {e}")
            return []
        self.engine.set_messages(messages)
        return messages

    async def upload_image(self, filename: str, content: bytes, media_type: str) -> str:
        """Uploads an image and keeps its url for the next :meth:`submit`."""
        if not media_type.startswith("image/"):
            raise UploadError("Please upload an image file")
        self.pending_image_url = await self.storage.upload(filename, content, media_type)
        return self.pending_image_url

    async def submit(
        self, text: str = "", image_url: Optional[str] = None
    ) -> Optional[Message]:
        """Sends a user turn and streams the reply.

        An image, either ``image_url`` or the last uploaded one, is sent as a
        markdown text part followed by a file part. Without text, an image
        submission asks for the image to be analyzed. A chat record is created
        first when there is no current chat.
        """
        image_url = image_url or self.pending_image_url
        if not image_url and not text.strip():
            raise EmptySubmissionError()

        parts: List[Dict[str, Any]] = []
        if image_url:
            parts.append({"type": "text", "text": f"![Image]({image_url})"})
            parts.append({"type": "file", "url": image_url})
        parts.append({"type": "text", "text": text or DEFAULT_IMAGE_PROMPT})
        self.pending_image_url = None

        if self.chat is None:
            await self.new_chat()
        return await self.engine.send_message(USER_ROLE, parts)

    def cancel(self) -> None:
        self.engine.cancel()

    def clear(self) -> None:
        """Clears the transcript and any pending image."""
        self.engine.clear()
        self.pending_image_url = None
