"""Pydantic models for the wire protocol and client conversation state.

Provides type safety, validation, and automatic OpenAPI documentation.

Models:
    - ChatMessage / ChatRequest: Incoming chat request payload
    - StreamChunk: One SSE frame of a streamed response
    - ModelId: Supported backend models with default fallback
    - Message / ConversationSnapshot: Client conversation state
    - Lifecycle / ErrorInfo: Turn state and normalized failure
"""

from streamchat.models.conversation import (
    ConversationSnapshot,
    ErrorInfo,
    Lifecycle,
    Message,
    Role,
)
from streamchat.models.schemas import (
    AVAILABLE_MODELS,
    DEFAULT_MODEL,
    ChatMessage,
    ChatRequest,
    ErrorBody,
    ModelId,
    ModelOption,
    StreamChunk,
    StreamStatus,
    resolve_model,
)

__all__ = [
    "AVAILABLE_MODELS",
    "DEFAULT_MODEL",
    "ChatMessage",
    "ChatRequest",
    "ConversationSnapshot",
    "ErrorBody",
    "ErrorInfo",
    "Lifecycle",
    "Message",
    "ModelId",
    "ModelOption",
    "Role",
    "StreamChunk",
    "StreamStatus",
    "resolve_model",
]
