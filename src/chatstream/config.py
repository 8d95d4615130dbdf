"""Runtime configuration, read from ``CHATSTREAM_*`` environment variables."""

import json
import logging
import os
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHATSTREAM_"


class Settings(BaseModel):
    """Endpoint locations and request options.

    ``timeout`` defaults to ``None``: a stream that stops sending blocks
    until it is cancelled or the connection drops.
    """

    base_url: str = "http://localhost:8000"
    chat_path: str = "/api/v1/chat"
    chats_path: str = "/api/v1/chats"
    storage_path: str = "/api/v1/storage"
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = None

    @property
    def chat_url(self) -> str:
        return self._join(self.chat_path)

    @property
    def chats_url(self) -> str:
        return self._join(self.chats_path)

    @property
    def storage_url(self) -> str:
        return self._join(self.storage_path)

    def _join(self, path: str) -> str:
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Builds settings from the environment, falling back to defaults.

        Invalid values are logged and replaced by their defaults.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for field in ("base_url", "chat_path", "chats_path", "storage_path", "timeout"):
            value = environ.get(ENV_PREFIX + field.upper())
            if value:
                values[field] = value

        raw_headers = environ.get(ENV_PREFIX + "HEADERS")
        if raw_headers:
            try:
                values["headers"] = json.loads(raw_headers)
            except json.JSONDecodeError as e:
                logger.warning(f"Ignoring {ENV_PREFIX}HEADERS, not valid JSON: {e}")

        try:
            return cls(**values)
        except ValidationError as e:
            logger.warning(f"Settings validation error: {e}, using defaults")
            return cls()
