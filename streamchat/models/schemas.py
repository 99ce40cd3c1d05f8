from enum import Enum

from pydantic import BaseModel, Field, field_validator


class ModelId(str, Enum):
    """Backend models a conversation can be served by."""

    GPT_4O = "gpt-4o"
    GPT_35_TURBO = "gpt-3.5-turbo"


DEFAULT_MODEL = ModelId.GPT_4O


class ModelOption(BaseModel):
    """Display metadata for a selectable model."""

    id: ModelId
    name: str
    description: str


AVAILABLE_MODELS: list[ModelOption] = [
    ModelOption(
        id=ModelId.GPT_4O,
        name="GPT-4o",
        description="Most capable model, best for complex tasks",
    ),
    ModelOption(
        id=ModelId.GPT_35_TURBO,
        name="GPT-3.5 Turbo",
        description="Fast and efficient for most tasks",
    ),
]


def resolve_model(value: object) -> ModelId:
    """Return the ModelId named by ``value``, or the default model.

    Unknown, missing and non-string values never fail.
    """
    if isinstance(value, ModelId):
        return value
    try:
        return ModelId(value)
    except ValueError:
        return DEFAULT_MODEL


class StreamStatus(str, Enum):
    """Status values for streaming updates."""

    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


class ChatMessage(BaseModel):
    """A single message as sent over the wire.

    Attributes:
        role: The speaker identifier (user, assistant, or system).
        content: The message text.
    """

    role: str = Field(..., min_length=1)
    content: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def strip_role(cls, v: str) -> str:
        """Strip whitespace from role before validation."""
        if isinstance(v, str):
            return v.strip()
        return v


class ChatRequest(BaseModel):
    """Request payload for the streaming chat endpoint.

    Attributes:
        messages: Conversation so far, oldest first. Never empty.
        model: Requested model. Unknown values fall back to the default.
    """

    messages: list[ChatMessage] = Field(..., min_length=1)
    model: ModelId = DEFAULT_MODEL

    @field_validator("model", mode="before")
    @classmethod
    def fallback_model(cls, v: object) -> ModelId:
        """Replace unsupported model names with the default model."""
        return resolve_model(v)


class StreamChunk(BaseModel):
    """A chunk of streamed response data.

    Attributes:
        content: The text delta carried by this chunk.
        done: Whether this is the final chunk.
        status: Current processing status (generating, complete, error).
        error: Error message if the stream failed.
        kind: Error kind if the stream failed.
    """

    content: str = ""
    done: bool = False
    status: StreamStatus | None = None
    error: str | None = None
    kind: str | None = None


class ErrorBody(BaseModel):
    """JSON body returned when a request fails before streaming starts."""

    error: str
