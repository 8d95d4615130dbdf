"""Concrete implementations for the chat-record service."""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from .errors import StoreError
from .models import COMPLETE, INPUT_READY, OUTPUT_READY, Chat, Message, TextPart

logger = logging.getLogger(__name__)


class Store(ABC):
    """Interface for creating chat records and fetching their history."""

    @abstractmethod
    async def create_chat(self) -> Chat:
        """Creates a new, empty chat record."""
        pass

    @abstractmethod
    async def get_messages(self, chat_id: str) -> List[Message]:
        """Returns the stored messages of a chat, oldest first."""
        pass


class InMemory(Store):
    """Keeps chat records in a dictionary."""

    def __init__(self):
        self._chats: Dict[str, List[Message]] = {}

    async def create_chat(self) -> Chat:
        chat = Chat(id=str(uuid.uuid4()))
        self._chats[chat.id] = []
        return chat

    async def get_messages(self, chat_id: str) -> List[Message]:
        if chat_id not in self._chats:
            raise StoreError(f"Unknown chat: {chat_id}")
        return list(self._chats[chat_id])

    def add_messages(self, chat_id: str, messages: Iterable[Message]) -> None:
        """Seeds a chat's history. The server side of a real deployment does this."""
        self._chats.setdefault(chat_id, []).extend(messages)


def _settle(part: Dict[str, Any]) -> Dict[str, Any]:
    if part.get("type") != "tool":
        return {**part, "lifecycle": COMPLETE}
    if "lifecycle" in part:
        return part
    return {**part, "lifecycle": OUTPUT_READY if "output" in part else INPUT_READY}


def message_from_record(record: Dict[str, Any]) -> Message:
    """Converts a stored message record into a complete :class:`Message`.

    Stored parts are always complete. A record without parts gets a single
    empty text part.
    """
    parts = [_settle(part) for part in record.get("parts") or []]
    values: Dict[str, Any] = {
        "role": record["role"],
        "parts": parts or [TextPart(text="")],
    }
    if record.get("id"):
        values["id"] = record["id"]
    created_at = (
        record.get("created_at") or record.get("createdAt") or record.get("timestamp")
    )
    if created_at:
        values["created_at"] = created_at
    return Message.model_validate(values)


class HTTP(Store):
    """Talks to a REST chat-record service.

    ``POST {chats_url}`` answers ``{"chat": {"id": ...}}`` and
    ``GET {chats_url}/{id}/messages`` answers ``{"messages": [...]}``.
    """

    def __init__(self, chats_url: str, client: Optional[httpx.AsyncClient] = None):
        self.chats_url = chats_url.rstrip("/")
        self.client = client or httpx.AsyncClient()

    async def create_chat(self) -> Chat:
        try:
            response = await self.client.post(
                self.chats_url, headers={"Content-Type": "application/json"}
            )
        except httpx.HTTPError as e:
            raise StoreError(f"Failed to create chat: {e}") from e
        if response.is_error:
            raise StoreError(f"Failed to create chat: {response.status_code}")
        try:
            chat = Chat.model_validate(response.json()["chat"])
        except (KeyError, ValidationError) as e:
            raise StoreError(f"Malformed chat record: {e}") from e
        logger.info("Created chat %s", chat.id)
        return chat

    async def get_messages(self, chat_id: str) -> List[Message]:
        try:
            response = await self.client.get(f"{self.chats_url}/{chat_id}/messages")
        except httpx.HTTPError as e:
            raise StoreError(f"Failed to fetch chat messages: {e}") from e
        if response.is_error:
            raise StoreError(f"Failed to fetch chat messages: {response.status_code}")
        try:
            return [
                message_from_record(record)
                for record in response.json().get("messages") or []
            ]
        except (KeyError, ValidationError) as e:
            raise StoreError(f"Malformed chat messages: {e}") from e
