"""Concrete implementations for asset storage."""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx

from .errors import UploadError

logger = logging.getLogger(__name__)


class Storage(ABC):
    """Interface for uploading binary assets and issuing their urls."""

    @abstractmethod
    async def upload(self, filename: str, content: bytes, media_type: str) -> str:
        """Stores ``content`` and returns a url that refers to it.

        Raises
        ------
        UploadError
            If the asset could not be stored.
        """
        pass


class InMemory(Storage):
    """Keeps uploads in a dictionary keyed by their ``memory://`` url."""

    def __init__(self):
        self.assets: Dict[str, bytes] = {}

    async def upload(self, filename: str, content: bytes, media_type: str) -> str:
        url = f"memory://{uuid.uuid4().hex}/{filename}"
        self.assets[url] = content
        return url


class HTTP(Storage):
    """Uploads assets as multipart ``file`` fields to a storage endpoint."""

    def __init__(self, storage_url: str, client: Optional[httpx.AsyncClient] = None):
        self.storage_url = storage_url
        self.client = client or httpx.AsyncClient()

    async def upload(self, filename: str, content: bytes, media_type: str) -> str:
        try:
            response = await self.client.post(
                self.storage_url, files={"file": (filename, content, media_type)}
            )
        except httpx.HTTPError as e:
            raise UploadError(str(e) or "Upload failed") from e
        if response.is_error:
            raise UploadError(response.text or "Upload failed")
        try:
            url = response.json()["url"]
        except (KeyError, TypeError, ValueError) as e:
            raise UploadError("Upload failed") from e
        logger.debug("Uploaded %s to %s", filename, url)
        return url
