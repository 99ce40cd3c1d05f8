"""Conversation state machine.

One ``ConversationController`` owns one conversation: the ordered message
log, the lifecycle of the current assistant turn, and the model selection.
All mutation happens on the event loop that drives it; the transport stream
is the only suspension point, so ``stop()`` stays reachable while a turn is
streaming.

Lifecycle::

    idle --send--> streaming --(delta)*--> completed
                   streaming --error-----> errored
                   streaming --stop------> stopped

``completed``, ``errored`` and ``stopped`` behave like ``idle`` for the next
``send``. Snapshots are persisted when a turn ends, on model switch and on
clear, never mid-stream.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Protocol

from streamchat.client.store import ConversationStore
from streamchat.errors import ChatError, StorageError, TransportError
from streamchat.models.conversation import (
    ConversationSnapshot,
    ErrorInfo,
    Lifecycle,
    Message,
    Role,
)
from streamchat.models.schemas import DEFAULT_MODEL, ChatMessage, ModelId, resolve_model

logger = logging.getLogger(__name__)


class DeltaSource(Protocol):
    """What the controller needs from an open stream."""

    def cancel(self) -> None: ...

    async def aclose(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str]: ...


class Transport(Protocol):
    """Opens one delta stream per assistant turn."""

    def open(self, messages: Sequence[ChatMessage], model: ModelId) -> DeltaSource: ...


class ConversationController:
    """Owns one conversation and drives its turns.

    Args:
        transport: Opens a delta stream for a message list and model.
        store: Persists snapshots. Defaults to an in-memory store.
        on_change: Called after every state change, for re-rendering.
    """

    def __init__(
        self,
        transport: Transport,
        store: ConversationStore | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._transport = transport
        self._store = store or ConversationStore()
        self._store.on_error = self._on_storage_error
        self.on_change = on_change

        self._messages: list[Message] = []
        self._model: ModelId = DEFAULT_MODEL
        self._lifecycle = Lifecycle.IDLE
        self._error: ErrorInfo | None = None
        self._stream: DeltaSource | None = None
        self._transport_idle = asyncio.Event()
        self._transport_idle.set()
        self.storage_warning: str | None = None

        self.restore()

    # -- read-only views -------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(m.model_copy() for m in self._messages)

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    @property
    def is_streaming(self) -> bool:
        return self._lifecycle is Lifecycle.STREAMING

    @property
    def error(self) -> ErrorInfo | None:
        return self._error

    @property
    def model(self) -> ModelId:
        return self._model

    def snapshot(self) -> ConversationSnapshot:
        """Return a deep copy of the conversation for persistence."""
        return ConversationSnapshot(
            messages=[m.model_copy() for m in self._messages],
            model=self._model,
        ).model_copy(deep=True)

    # -- mutations -------------------------------------------------------

    def restore(self) -> bool:
        """Replace in-memory state with the persisted snapshot, if any.

        Missing or unreadable data leaves the current state untouched.

        Returns:
            True if a snapshot was restored.
        """
        if self.is_streaming:
            logger.warning("Ignoring restore while a turn is streaming")
            return False

        snapshot = self._store.load()
        stored_model = self._store.load_model()
        if stored_model is not None:
            self._model = stored_model
        elif snapshot is not None:
            self._model = snapshot.model
        if snapshot is None:
            return False

        self._messages = list(snapshot.messages)
        self._lifecycle = Lifecycle.IDLE
        self._error = None
        logger.info(f"Restored conversation with {len(self._messages)} messages")
        self._notify()
        return True

    async def send(self, text: str) -> bool:
        """Send a user message and stream the assistant reply.

        Returns once the turn has ended (completed, errored or stopped).

        Returns:
            False if the message was rejected (blank text or a turn already
            streaming), True otherwise.
        """
        if not text or not text.strip():
            logger.debug("Rejecting blank message")
            return False
        if self.is_streaming:
            logger.debug("Rejecting send while a turn is streaming")
            return False

        self._messages.append(Message(role=Role.USER, content=text))
        await self._run_turn()
        return True

    def append_delta(self, text: str) -> bool:
        """Append streamed text to the in-progress assistant message."""
        if not self.is_streaming:
            logger.warning(f"Ignoring delta outside streaming (lifecycle={self._lifecycle.value})")
            return False
        self._messages[-1].content += text
        self._notify()
        return True

    def complete(self) -> bool:
        """Finish the streaming turn successfully and persist."""
        return self._finish(Lifecycle.COMPLETED)

    def fail(self, error: ErrorInfo) -> bool:
        """End the streaming turn with an error.

        Content streamed so far stays in the assistant message.
        """
        return self._finish(Lifecycle.ERRORED, error)

    def stop(self) -> bool:
        """Cancel the streaming turn, keeping the partial reply."""
        stream = self._stream
        if not self._finish(Lifecycle.STOPPED):
            return False
        if stream is not None:
            stream.cancel()
        return True

    async def retry(self) -> bool:
        """Drop the failed or stopped reply and re-send the preceding user turn.

        Returns:
            False unless the last message is from the assistant, the turn
            errored or was stopped, and a user message precedes it.
        """
        if self._lifecycle not in (Lifecycle.ERRORED, Lifecycle.STOPPED):
            logger.debug(f"Ignoring retry in lifecycle {self._lifecycle.value}")
            return False
        if len(self._messages) < 2 or self._messages[-1].role is not Role.ASSISTANT:
            return False
        if self._messages[-2].role is not Role.USER:
            return False

        self._messages.pop()
        await self._run_turn()
        return True

    def clear(self) -> None:
        """Forget every message and remove the persisted snapshot."""
        if self.is_streaming:
            self.stop()
        self._messages = []
        self._lifecycle = Lifecycle.IDLE
        self._error = None
        self._store.clear()
        self._notify()

    def switch_model(self, model: ModelId | str) -> ModelId:
        """Select the model for subsequent requests.

        Unknown names select the default model. Existing messages are not
        touched.

        Returns:
            The model now selected.
        """
        self._model = resolve_model(model)
        self._store.save_model(self._model)
        if not self.is_streaming:
            self._store.save(self.snapshot())
        self._notify()
        return self._model

    # -- internals -------------------------------------------------------

    async def _run_turn(self) -> None:
        history = [
            ChatMessage(role=m.role.value, content=m.content) for m in self._messages
        ]
        placeholder = Message(role=Role.ASSISTANT)
        self._messages.append(placeholder)
        self._lifecycle = Lifecycle.STREAMING
        self._error = None
        self._notify()

        # a stopped turn may still be tearing down its request
        while not self._transport_idle.is_set():
            await self._transport_idle.wait()
        if not self.is_streaming or self._messages[-1] is not placeholder:
            return

        stream = self._transport.open(history, self._model)
        self._stream = stream
        self._transport_idle.clear()
        try:
            async for delta in stream:
                if self._stream is not stream:
                    break
                self.append_delta(delta)
        except ChatError as e:
            if self._stream is stream:
                logger.warning(f"Turn failed ({e.kind.value}): {e.message}")
                self.fail(ErrorInfo.from_error(e))
        except asyncio.CancelledError:
            if self._stream is stream:
                self.stop()
            raise
        except Exception as e:
            if self._stream is not stream:
                raise
            logger.exception("Unexpected failure while streaming")
            self.fail(ErrorInfo.from_error(TransportError(str(e))))
        finally:
            try:
                await stream.aclose()
            finally:
                self._transport_idle.set()
                if self._stream is stream:
                    self._stream = None

        if self.is_streaming and self._messages[-1] is placeholder:
            self.complete()

    def _finish(self, lifecycle: Lifecycle, error: ErrorInfo | None = None) -> bool:
        if not self.is_streaming:
            logger.warning(
                f"Ignoring transition to {lifecycle.value} "
                f"(lifecycle={self._lifecycle.value})"
            )
            return False
        self._lifecycle = lifecycle
        self._error = error
        self._stream = None
        self._store.save(self.snapshot())
        self._notify()
        return True

    def _on_storage_error(self, error: StorageError) -> None:
        self.storage_warning = error.message
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()
