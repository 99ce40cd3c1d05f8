"""Client-side conversation state: messages, snapshots and turn lifecycle."""

import uuid
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from streamchat.errors import ChatError
from streamchat.models.schemas import DEFAULT_MODEL, ModelId, resolve_model


class Role(str, Enum):
    """Speaker of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Lifecycle(str, Enum):
    """State of the current assistant turn."""

    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    STOPPED = "stopped"


class Message(BaseModel):
    """One message in a conversation.

    ``id`` and ``role`` are fixed at creation. Assistant content only grows
    while its turn is streaming.

    Attributes:
        id: Opaque identifier, unique within the conversation.
        role: Who produced the message.
        content: Message text.
        created_at: Creation time (UTC). Serialized as ``createdAt``.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), frozen=True)
    role: Role = Field(..., frozen=True)
    content: str = ""
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        alias="createdAt",
    )


class ConversationSnapshot(BaseModel):
    """Full persisted representation of a conversation at a checkpoint.

    Attributes:
        messages: Messages in chronological send order.
        model: Model selected when the snapshot was taken.
    """

    messages: list[Message] = Field(default_factory=list)
    model: ModelId = DEFAULT_MODEL

    @field_validator("model", mode="before")
    @classmethod
    def fallback_model(cls, v: object) -> ModelId:
        """Replace unsupported model names with the default model."""
        return resolve_model(v)

    @model_validator(mode="after")
    def check_unique_ids(self) -> "ConversationSnapshot":
        """Reject snapshots with duplicate message ids."""
        ids = [m.id for m in self.messages]
        if len(ids) != len(set(ids)):
            raise ValueError("message ids must be unique")
        return self


class ErrorInfo(BaseModel):
    """Normalized error attached to a failed turn.

    Attributes:
        kind: Error kind from the taxonomy.
        message: Text suitable for display.
        retryable: Whether ``retry()`` is expected to help.
    """

    kind: str
    message: str
    retryable: bool = True

    @classmethod
    def from_error(cls, exc: ChatError) -> "ErrorInfo":
        return cls(kind=exc.kind.value, message=exc.message, retryable=exc.retryable)
