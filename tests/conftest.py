"""
Core pytest configuration and fixtures for chatstream testing.

This module provides shared test fixtures, configuration, and utilities
that support the pillar-based testing architecture.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, Dict, List

import pytest
from chatstream.models import (
    ASSISTANT_ROLE,
    USER_ROLE,
    FilePart,
    Message,
    TextPart,
)

# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages() -> List[Message]:
    """Sample transcript for testing."""
    return [
        Message(role=USER_ROLE, parts=[TextPart(text="Hello, how are you?")]),
        Message(
            role=ASSISTANT_ROLE,
            parts=[TextPart(text="I'm doing well, thank you!")],
        ),
        Message(
            role=USER_ROLE,
            parts=[
                TextPart(text="![Image](https://cdn.example.com/cat.png)"),
                FilePart(url="https://cdn.example.com/cat.png"),
                TextPart(text="What is this?"),
            ],
        ),
    ]


@pytest.fixture
def hello_events() -> List[Dict[str, Any]]:
    """A minimal text-only stream."""
    return [
        {"type": "start"},
        {"type": "text-delta", "delta": "Hel"},
        {"type": "text-delta", "delta": "lo"},
        {"type": "finish"},
    ]


@pytest.fixture
def tool_events() -> List[Dict[str, Any]]:
    """A stream with a single tool call."""
    return [
        {"type": "tool-input-start", "toolCallId": "t1", "toolName": "search"},
        {"type": "tool-input-delta", "toolCallId": "t1", "delta": '{"q":'},
        {"type": "tool-input-available", "toolCallId": "t1", "input": {"q": "x"}},
        {"type": "tool-output-available", "toolCallId": "t1", "output": {"result": "y"}},
    ]


# ===== TEST UTILITIES =====


def sse(*events: Dict[str, Any]) -> bytes:
    """Encodes events as ``data:`` frames."""
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events).encode("utf-8")


@pytest.fixture
def encode_events():
    """Helper function to build event stream bytes in tests."""
    return sse


class GatedTransport:
    """A transport whose response bodies are fed by the test.

    Each request gets its own queue. ``None`` on a queue ends that body.
    """

    def __init__(self):
        self.queues: List[asyncio.Queue] = []
        self.requests: List[Dict[str, Any]] = []

    @asynccontextmanager
    async def open_stream(self, payload, headers=None):
        queue: asyncio.Queue = asyncio.Queue()
        self.queues.append(queue)
        self.requests.append({"payload": payload, "headers": dict(headers or {})})
        yield self._drain(queue)

    async def _drain(self, queue):
        while True:
            chunk = await queue.get()
            if chunk is None:
                return
            yield chunk

    async def wait_for_request(self, count: int) -> None:
        while len(self.queues) < count:
            await asyncio.sleep(0)


@pytest.fixture
def gated_transport():
    """Transport whose stream stays open until the test closes it."""
    return GatedTransport()


# ===== APP FIXTURES =====


@pytest.fixture
def test_app(hello_events):
    """
    Provides a ChatStream instance with simple, predictable pillars.

    Uses a replay transport and in-memory store and storage so no network
    access is needed.
    """
    from chatstream import ChatStream
    from chatstream.config import Settings
    from chatstream.storage import InMemory as InMemoryStorage
    from chatstream.store import InMemory
    from chatstream.transport import Replay

    return ChatStream(
        transport=Replay.from_events(hello_events),
        store=InMemory(),
        storage=InMemoryStorage(),
        settings=Settings(),
    )


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
