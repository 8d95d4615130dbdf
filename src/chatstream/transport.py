"""Concrete implementations for chat endpoint transports."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Union

import httpx

from .errors import TransportError

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Interface for the chat completion endpoint."""

    @abstractmethod
    def open_stream(
        self, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None
    ):
        """Issues a chat request and opens its response body.

        This is an async context manager. Entering it sends the request and
        waits for the response status; the value it yields is an async
        iterator over raw body chunks, read on demand.

        Parameters
        ----------
        payload : Dict[str, Any]
            The request body, as built by :func:`chatstream.models.build_request`.
        headers : Dict[str, str], optional
            Extra request headers.

        Raises
        ------
        TransportError
            If the request fails or the response status is not a success.
        """
        pass


class HTTP(Transport):
    """Streams chat responses from an HTTP endpoint with httpx."""

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @asynccontextmanager
    async def open_stream(self, payload, headers=None):
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        try:
            async with self.client.stream(
                "POST", self.url, json=payload, headers=request_headers
            ) as response:
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportError.from_status(response.status_code, body)
                logger.debug("Chat stream opened (%s)", response.status_code)
                yield response.aiter_bytes()
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {self.url} failed: {e}") from e

    async def aclose(self) -> None:
        await self.client.aclose()


class Replay(Transport):
    """Serves a canned response, for offline use and testing.

    Parameters
    ----------
    chunks : Iterable[Union[bytes, str]]
        Raw body chunks, served in order.
    delay : float, default=0
        Seconds to sleep before each chunk.
    """

    def __init__(self, chunks: Iterable[Union[bytes, str]] = (), delay: float = 0):
        self.chunks: List[bytes] = [
            c.encode("utf-8") if isinstance(c, str) else c for c in chunks
        ]
        self.delay = delay
        self.requests: List[Dict[str, Any]] = []

    @classmethod
    def from_events(cls, events: Iterable[Dict[str, Any]], delay: float = 0) -> "Replay":
        """Builds a replay that sends each event as one ``data:`` frame."""
        return cls(
            [f"data: {json.dumps(event)}\n\n" for event in events], delay=delay
        )

    @asynccontextmanager
    async def open_stream(self, payload, headers=None):
        self.requests.append({"payload": payload, "headers": dict(headers or {})})
        yield self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk
