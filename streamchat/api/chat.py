"""Streaming chat endpoint.

Validates the request, forwards it to the inference provider and relays the
provider's deltas as Server-Sent Events. Provider failures are classified
into the stable error taxonomy before they reach the client.
"""

import json
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any

import pydantic
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from streamchat.agent.chat_agent import ChatProvider, get_agent_service
from streamchat.errors import ChatError, ValidationError, classify_provider_error
from streamchat.models.schemas import ChatRequest, StreamChunk, StreamStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

_NOTHING = object()


def get_chat_provider() -> ChatProvider:
    """Dependency returning the provider that serves chat requests."""
    return get_agent_service()


def parse_chat_request(payload: Any) -> ChatRequest:
    """Validate a decoded request body.

    Args:
        payload: JSON-decoded request body.

    Returns:
        The validated request, with unknown models replaced by the default.

    Raises:
        ValidationError: If ``messages`` is missing, not a list, empty, or
            contains an element without a role.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise ValidationError()

    try:
        return ChatRequest.model_validate(payload)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ValidationError(f"Invalid request at {location}: {first['msg']}") from e


async def _read_payload(request: Request) -> Any:
    body = await request.body()
    try:
        return json.loads(body)
    except ValueError as e:
        raise ValidationError("Request body must be valid JSON") from e


_LINE_BREAKS = str.maketrans({"\x85": "\\u0085", "\u2028": "\\u2028", "\u2029": "\\u2029"})


def _frame(chunk: StreamChunk) -> str:
    # JSON leaves these unescaped but line-based SSE readers split on them
    payload = chunk.model_dump_json(exclude_none=True).translate(_LINE_BREAKS)
    return f"data: {payload}\n\n"


async def _first_delta(deltas: AsyncIterator[str]) -> object:
    """Pull the first delta so connect-time failures get a proper status."""
    try:
        return await anext(deltas)
    except StopAsyncIteration:
        return _NOTHING
    except Exception as e:
        logger.error(f"Provider call failed: {e}")
        raise classify_provider_error(e) from e


async def _sse_frames(
    first: object,
    deltas: AsyncGenerator[str],
) -> AsyncGenerator[str]:
    """Relay provider deltas as SSE frames, ending with a done marker."""
    try:
        if first is not _NOTHING:
            yield _frame(StreamChunk(content=first, status=StreamStatus.GENERATING))
            async for delta in deltas:
                yield _frame(StreamChunk(content=delta, status=StreamStatus.GENERATING))
        yield _frame(StreamChunk(done=True, status=StreamStatus.COMPLETE))
    except Exception as e:
        logger.error(f"Provider stream failed: {e}")
        error = classify_provider_error(e)
        yield _frame(
            StreamChunk(
                done=True,
                status=StreamStatus.ERROR,
                error=error.message,
                kind=error.kind.value,
            )
        )
    finally:
        await deltas.aclose()


@router.post(
    "/stream",
    responses={
        400: {"description": "Invalid request"},
        401: {"description": "Provider credentials misconfigured"},
        429: {"description": "Provider rate limit exceeded"},
        500: {"description": "Provider failure"},
    },
)
async def stream_chat(
    request: Request,
    provider: ChatProvider = Depends(get_chat_provider),
) -> StreamingResponse:
    """Stream a chat completion as Server-Sent Events.

    Each frame is ``data: <StreamChunk JSON>``. Content frames carry one
    delta; the last frame has ``done=true``.

    Raises:
        ChatError: Rendered as ``{"error": ...}`` with the error's status.
    """
    chat_request = parse_chat_request(await _read_payload(request))
    logger.info(
        f"Chat request: {len(chat_request.messages)} messages, "
        f"model={chat_request.model.value}"
    )

    deltas = provider.stream(chat_request.messages, chat_request.model)
    try:
        first = await _first_delta(deltas)
    except ChatError:
        await deltas.aclose()
        raise

    return StreamingResponse(
        _sse_frames(first, deltas),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
