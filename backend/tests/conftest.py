"""Pytest fixtures and config."""

import asyncio
import os
import tempfile
from pathlib import Path

# Must be set before app modules build the engine and settings
_DB_DIR = tempfile.mkdtemp(prefix="content-studio-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
for _key in ("OPENAI_API_KEY", "GEMINI_API_KEY"):
    os.environ.pop(_key, None)

import pytest  # noqa: E402

from app.core.db import init_db  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def database():
    init_db()
    yield


class ScriptedTransport:
    """Streams a fixed list of byte chunks, optionally failing afterwards."""

    def __init__(self, chunks, error=None):
        self.chunks = list(chunks)
        self.error = error
        self.calls = []

    async def stream_bytes(self, messages, *, model=None, temperature=0.7):
        self.calls.append([dict(m) for m in messages])
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk
        if self.error is not None:
            raise self.error


class GatedTransport:
    """Streams whatever the test pushes; push None to end the stream."""

    def __init__(self):
        self.queue = asyncio.Queue()
        self.calls = []
        self.closed = 0

    def push(self, *items):
        for item in items:
            self.queue.put_nowait(item)

    async def stream_bytes(self, messages, *, model=None, temperature=0.7):
        self.calls.append([dict(m) for m in messages])
        try:
            while True:
                item = await self.queue.get()
                if item is None:
                    return
                yield item
        finally:
            self.closed += 1


class RecordingSink:
    def __init__(self, error=None):
        self.saved = []
        self.error = error

    def save(self, owner_id, input_description, result_text):
        if self.error is not None:
            raise self.error
        self.saved.append((owner_id, input_description, result_text))
        return 1000 + len(self.saved)


async def wait_until(predicate, attempts=1000):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("condition not reached")


@pytest.fixture
def sink():
    return RecordingSink()
