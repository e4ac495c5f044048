"""Pytest configuration and shared fixtures."""

import asyncio
import os
from typing import Any, List, Tuple
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Set test environment before importing config
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FORMAT", "console")

from src.config import DEFAULT_TEMPLATES_DIR
from src.models import CommandOutcome, ThreadRef
from src.services.dispatcher import RequestDispatcher
from src.services.execution import ExecutionPipeline, TemplateLibrary
from src.services.sandbox import SandboxStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingChat:
    """ChatPlatform that records sends and edits."""

    def __init__(self):
        self.sent: List[Tuple[ThreadRef, str, str]] = []
        self.edits: List[Tuple[Any, str]] = []

    async def send_message(self, thread: ThreadRef, text: str) -> str:
        reply_ref = f"reply-{len(self.sent) + 1}"
        self.sent.append((thread, text, reply_ref))
        return reply_ref

    async def edit_message(self, reply: Any, text: str) -> None:
        self.edits.append((reply, text))

    @property
    def texts(self) -> List[str]:
        """Every text delivered, sends and edits alike, in order."""
        return [text for _, text, _ in self.sent] + [text for _, text in self.edits]


async def drain() -> None:
    """Let spawned background tasks run to completion."""
    for _ in range(10):
        await asyncio.sleep(0)


def make_thread(message_id: str = "msg-1", channel_id: str = "chan-1") -> ThreadRef:
    return ThreadRef(message_id=message_id, channel_id=channel_id)


@pytest.fixture
def clock():
    """Fake monotonic clock."""
    return FakeClock()


@pytest.fixture
def mock_engine():
    """Mock container engine where every operation succeeds."""
    engine = AsyncMock()
    engine.create.return_value = True
    engine.copy_file.return_value = True
    engine.exec.return_value = CommandOutcome.completed(0, b"", b"")
    engine.kill.return_value = True
    engine.remove.return_value = True
    return engine


@pytest.fixture
def chat():
    """Recording chat platform."""
    return RecordingChat()


@pytest.fixture
def templates():
    """Template library over the bundled templates."""
    return TemplateLibrary(DEFAULT_TEMPLATES_DIR)


@pytest_asyncio.fixture
async def store(mock_engine, clock):
    """Sandbox store over the mock engine with a 60s idle timeout."""
    store = SandboxStore(
        engine=mock_engine,
        container_config={"image": "test-image"},
        idle_timeout=60.0,
        clock=clock,
    )
    yield store
    await store.close()


@pytest.fixture
def pipeline(store, mock_engine, chat, templates):
    """Execution pipeline whose hard timeout never fires during a test."""
    return ExecutionPipeline(
        store=store,
        engine=mock_engine,
        chat=chat,
        templates=templates,
        hard_timeout=60.0,
    )


@pytest.fixture
def dispatcher(store, pipeline):
    """Request dispatcher with the default ``?`` prefix."""
    return RequestDispatcher(store=store, pipeline=pipeline, prefix="?")
