"""Streaming transport client for the chat endpoint.

``ChatTransport.open`` returns a ``DeltaStream``: a lazy, single-use async
iterator of text deltas for one request. Iteration ends normally at the
end-of-stream marker and raises a ``ChatError`` on failure. ``cancel()`` may
be called at any time, including while the request is still waiting for
response headers; once it has been called no further delta is yielded and
the HTTP request is aborted.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Sequence
from contextlib import AsyncExitStack

import httpx
import pydantic

from streamchat.errors import (
    ChatError,
    TransportError,
    error_for_kind,
    error_for_status,
)
from streamchat.models.schemas import ChatMessage, ModelId, StreamChunk

logger = logging.getLogger(__name__)

STREAM_PATH = "/chat/stream"

_EOF = object()
_CANCELLED = object()


class CancellationToken:
    """One-shot cancellation signal shared between a caller and a stream."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def parse_frame(data_lines: Sequence[str]) -> StreamChunk:
    """Parse the ``data:`` payload of one SSE event into a StreamChunk.

    Raises:
        TransportError: If the payload is not a valid frame.
    """
    try:
        return StreamChunk.model_validate_json("\n".join(data_lines))
    except pydantic.ValidationError as e:
        raise TransportError("Received a malformed stream frame") from e


class DeltaStream:
    """Cancellable, single-use async iterator over one response's deltas."""

    def __init__(
        self,
        url: str,
        payload: dict,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
        token: CancellationToken | None = None,
    ) -> None:
        self._url = url
        self._payload = payload
        self._client = client
        self._timeout = timeout
        self.token = token or CancellationToken()
        self._deltas = self._iterate()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        """Stop the stream. No delta is yielded after this call."""
        if not self.token.cancelled:
            logger.debug("Cancelling chat stream")
        self.token.cancel()

    async def aclose(self) -> None:
        await self._deltas.aclose()

    def __aiter__(self) -> AsyncIterator[str]:
        return self

    async def __anext__(self) -> str:
        return await anext(self._deltas)

    async def _until_cancelled(self, step: Awaitable[object]) -> object:
        """Run one network step, abandoning it if the token fires first.

        An abandoned step is cancelled and awaited before returning, so the
        request it was driving is torn down by the time this returns.
        """
        task = asyncio.ensure_future(step)
        waiter = asyncio.ensure_future(self.token.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if self.token.cancelled or not task.done():
                task.cancel()
                await asyncio.wait({task})
        if self.token.cancelled:
            if not task.cancelled():
                task.exception()
            return _CANCELLED
        return task.result()

    async def _iterate(self) -> AsyncGenerator[str]:
        if self.token.cancelled:
            return
        try:
            async with AsyncExitStack() as stack:
                client = self._client
                if client is None:
                    client = await stack.enter_async_context(
                        httpx.AsyncClient(timeout=self._timeout)
                    )
                response = await self._until_cancelled(
                    stack.enter_async_context(
                        client.stream(
                            "POST",
                            self._url,
                            json=self._payload,
                            headers={"Accept": "text/event-stream"},
                        )
                    )
                )
                if response is _CANCELLED:
                    return
                if response.status_code >= 400:
                    raise await _error_from_response(response)

                lines = response.aiter_lines()
                data_lines: list[str] = []
                while True:
                    line = await self._until_cancelled(anext(lines, _EOF))
                    if line is _CANCELLED:
                        return
                    if line is _EOF or line == "":
                        # blank line or end of body dispatches the pending event
                        if data_lines:
                            frame = parse_frame(data_lines)
                            data_lines = []
                            if frame.error is not None:
                                raise error_for_kind(frame.kind, frame.error)
                            if frame.done:
                                return
                            if frame.content:
                                yield frame.content
                        if line is _EOF:
                            raise TransportError("Stream ended before completion")
                    elif line.startswith("data:"):
                        data_lines.append(line[5:].removeprefix(" "))
        except httpx.HTTPError as e:
            logger.warning(f"Chat stream transport failure: {e}")
            raise TransportError(f"Connection failed: {e}") from e


async def _error_from_response(response: httpx.Response) -> ChatError:
    """Build the ChatError described by a non-2xx routing-layer response."""
    await response.aread()
    message = None
    try:
        message = response.json().get("error")
    except (ValueError, AttributeError):
        logger.debug(f"Error response without JSON body: HTTP {response.status_code}")
    return error_for_status(response.status_code, message or f"HTTP {response.status_code}")


class ChatTransport:
    """Opens streaming chat requests against the routing layer.

    Args:
        base_url: Base URL of the routing layer.
        timeout: Request timeout in seconds.
        client: Shared HTTP client. When omitted each stream opens and
            closes its own.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + STREAM_PATH
        self._timeout = timeout
        self._client = client

    def open(self, messages: Sequence[ChatMessage], model: ModelId) -> DeltaStream:
        """Prepare one request. Nothing is sent until the stream is iterated."""
        payload = {
            "messages": [m.model_dump() for m in messages],
            "model": model.value,
        }
        return DeltaStream(
            self._url, payload, client=self._client, timeout=self._timeout
        )
