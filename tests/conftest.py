"""Pytest fixtures and shared test configuration.

Fixtures:
    - provider: Scripted fake inference provider
    - async_client: HTTPX client for API testing with the fake provider
    - kv_data / store: In-memory persistence for controller tests
    - transport: Fake transport handing out controllable streams
"""

import asyncio
from collections.abc import AsyncGenerator, Sequence
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from streamchat.api import app
from streamchat.api.chat import get_chat_provider
from streamchat.client.store import ConversationStore, MappingKeyValueStore
from streamchat.models.schemas import ChatMessage, ModelId

_WAKE = object()


class FakeProvider:
    """Provider that yields scripted deltas, then optionally raises."""

    def __init__(
        self,
        deltas: Sequence[str] = (),
        error: BaseException | None = None,
    ) -> None:
        self.deltas = list(deltas)
        self.error = error
        self.calls: list[tuple[list[ChatMessage], ModelId]] = []

    async def stream(
        self, messages: Sequence[ChatMessage], model: ModelId
    ) -> AsyncGenerator[str]:
        self.calls.append((list(messages), model))
        for delta in self.deltas:
            yield delta
        if self.error is not None:
            raise self.error


class FakeStream:
    """Delta stream fed by the test through a queue.

    Items: a string is a delta, None ends the stream, an exception is raised.
    Setting ``hold_close`` makes ``aclose`` wait for that event.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[Any] = asyncio.Queue()
        self.cancelled = False
        self.closed = False
        self.hold_close: asyncio.Event | None = None

    def cancel(self) -> None:
        self.cancelled = True
        self.queue.put_nowait(_WAKE)

    async def aclose(self) -> None:
        if self.hold_close is not None:
            await self.hold_close.wait()
        self.closed = True

    def __aiter__(self) -> "FakeStream":
        return self

    async def __anext__(self) -> str:
        item = await self.queue.get()
        self.queue.task_done()
        if self.cancelled or item is None or item is _WAKE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def push(self, item: Any) -> None:
        """Queue an item and wait until the consumer has taken it."""
        self.queue.put_nowait(item)
        await self.queue.join()


class FakeTransport:
    """Transport that records requests and hands out FakeStreams."""

    def __init__(self) -> None:
        self.streams: list[FakeStream] = []
        self.requests: list[tuple[list[ChatMessage], ModelId]] = []

    def open(self, messages: Sequence[ChatMessage], model: ModelId) -> FakeStream:
        stream = FakeStream()
        self.streams.append(stream)
        self.requests.append((list(messages), model))
        return stream

    @property
    def stream(self) -> FakeStream:
        return self.streams[-1]


@pytest.fixture
def provider() -> FakeProvider:
    """Provider streaming "Hel", "lo!" by default."""
    return FakeProvider(["Hel", "lo!"])


@pytest.fixture
async def async_client(provider: FakeProvider) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for API testing.

    Yields:
        AsyncClient bound to the app, with the fake provider injected.
    """
    app.dependency_overrides[get_chat_provider] = lambda: provider
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def kv_data() -> dict[str, Any]:
    return {}


@pytest.fixture
def store(kv_data: dict[str, Any]) -> ConversationStore:
    return ConversationStore(MappingKeyValueStore(kv_data))


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
