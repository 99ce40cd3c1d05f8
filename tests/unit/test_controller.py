"""Unit tests for ConversationController.

Drives the state machine through a fake transport whose streams are fed
delta by delta from the test.
"""

import asyncio
import json
from collections.abc import Callable, Coroutine
from typing import Any

import pytest
from pytest_check import check

from streamchat.client.controller import ConversationController
from streamchat.client.store import (
    CHAT_HISTORY_KEY,
    SELECTED_MODEL_KEY,
    ConversationStore,
    MappingKeyValueStore,
)
from streamchat.errors import AuthError, ThrottleError, TransportError
from streamchat.models.conversation import (
    ConversationSnapshot,
    ErrorInfo,
    Lifecycle,
    Message,
    Role,
)
from streamchat.models.schemas import ModelId
from tests.conftest import FakeTransport


async def start(coro: Coroutine[Any, Any, bool]) -> asyncio.Task[bool]:
    """Run ``coro`` as a task until it blocks on the stream."""
    task = asyncio.create_task(coro)
    await asyncio.sleep(0)
    return task


async def until(predicate: Callable[[], bool]) -> None:
    while not predicate():
        await asyncio.sleep(0)


class BrokenKeyValueStore:
    """Backend where every operation fails."""

    def get(self, key: str) -> str | None:
        raise OSError("storage unavailable")

    def set(self, key: str, value: str) -> None:
        raise OSError("quota exceeded")

    def delete(self, key: str) -> None:
        raise OSError("storage unavailable")


@pytest.fixture
def controller(transport: FakeTransport, store: ConversationStore) -> ConversationController:
    return ConversationController(transport, store)


class TestSend:
    """Tests for send() and the streaming lifecycle."""

    async def test_send_enters_streaming_with_placeholder(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        """send() appends the user message and an empty assistant message."""
        task = await start(controller.send("hi"))

        messages = controller.messages
        assert controller.lifecycle is Lifecycle.STREAMING
        assert [m.role for m in messages] == [Role.USER, Role.ASSISTANT]
        assert messages[0].content == "hi"
        assert messages[1].content == ""

        await transport.stream.push(None)
        assert await task is True

    async def test_request_excludes_placeholder(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        """The transport receives the history up to the new user message."""
        task = await start(controller.send("hi"))
        await transport.stream.push(None)
        await task

        history, model = transport.requests[0]
        assert [(m.role, m.content) for m in history] == [("user", "hi")]
        assert model is ModelId.GPT_4O

    @pytest.mark.parametrize(
        "deltas",
        [
            ["Hel", "lo!"],
            ["a"],
            ["", "x", "", "y"],
            ["multi\nline ", "wörds ", "🙂"],
        ],
    )
    async def test_content_is_concatenation_in_arrival_order(
        self,
        controller: ConversationController,
        transport: FakeTransport,
        deltas: list[str],
    ) -> None:
        task = await start(controller.send("hi"))
        for delta in deltas:
            await transport.stream.push(delta)
        await transport.stream.push(None)
        await task

        assert controller.messages[-1].content == "".join(deltas)
        assert controller.lifecycle is Lifecycle.COMPLETED

    async def test_send_while_streaming_is_noop(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("first"))
        await transport.stream.push("partial")

        accepted = await controller.send("second")

        assert accepted is False
        assert len(controller.messages) == 2
        assert controller.lifecycle is Lifecycle.STREAMING
        assert len(transport.requests) == 1

        await transport.stream.push(None)
        await task

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_message_rejected(
        self, controller: ConversationController, transport: FakeTransport, text: str
    ) -> None:
        assert await controller.send(text) is False
        assert controller.messages == ()
        assert controller.lifecycle is Lifecycle.IDLE
        assert transport.requests == []

    async def test_complete_persists_snapshot(
        self,
        controller: ConversationController,
        transport: FakeTransport,
        store: ConversationStore,
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("Hel")
        assert store.load() is None

        await transport.stream.push("lo!")
        await transport.stream.push(None)
        await task

        snapshot = store.load()
        assert snapshot is not None
        with check:
            assert len(snapshot.messages) == 2
        with check:
            assert snapshot.messages[1].content == "Hello!"
        with check:
            assert snapshot.model is ModelId.GPT_4O

    async def test_next_send_after_completion(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        for text in ("one", "two"):
            task = await start(controller.send(text))
            await transport.stream.push(f"re: {text}")
            await transport.stream.push(None)
            await task

        assert [m.content for m in controller.messages] == ["one", "re: one", "two", "re: two"]
        history, _ = transport.requests[1]
        assert [m.content for m in history] == ["one", "re: one", "two"]

    async def test_stream_is_closed_after_turn(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push(None)
        await task

        assert transport.stream.closed is True


class TestDirectTransitions:
    """Tests for append_delta/complete/fail outside a streaming turn."""

    def test_append_delta_outside_streaming_is_noop(
        self, controller: ConversationController
    ) -> None:
        assert controller.append_delta("stray") is False
        assert controller.messages == ()
        assert controller.lifecycle is Lifecycle.IDLE

    def test_complete_and_fail_require_streaming(
        self, controller: ConversationController
    ) -> None:
        check.is_false(controller.complete())
        check.is_false(controller.fail(ErrorInfo(kind="upstream", message="x")))
        check.is_false(controller.stop())
        check.equal(controller.lifecycle, Lifecycle.IDLE)

    async def test_no_delta_after_completion(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("done")
        await transport.stream.push(None)
        await task

        assert controller.append_delta(" more") is False
        assert controller.messages[-1].content == "done"


class TestFail:
    """Tests for stream errors."""

    async def test_error_keeps_partial_content(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("Hel")
        await transport.stream.push(TransportError("Connection failed: reset"))
        await task

        assert controller.lifecycle is Lifecycle.ERRORED
        assert controller.messages[-1].content == "Hel"
        assert controller.error == ErrorInfo(
            kind="transport", message="Connection failed: reset", retryable=True
        )

    async def test_error_info_is_normalized(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push(AuthError())
        await task

        assert controller.error is not None
        assert controller.error.kind == "auth"
        assert controller.error.retryable is False
        assert "API key" in controller.error.message

    async def test_unexpected_exception_ends_turn(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push(RuntimeError("decoder exploded"))
        await task

        assert controller.lifecycle is Lifecycle.ERRORED
        assert controller.error is not None
        assert controller.error.kind == "transport"

    async def test_error_turn_is_persisted(
        self,
        controller: ConversationController,
        transport: FakeTransport,
        store: ConversationStore,
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("Hel")
        await transport.stream.push(ThrottleError())
        await task

        snapshot = store.load()
        assert snapshot is not None
        assert [m.content for m in snapshot.messages] == ["hi", "Hel"]


class TestStop:
    """Tests for user-initiated cancellation."""

    async def test_stop_preserves_applied_deltas(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        stream = transport.stream
        await stream.push("Hel")

        assert controller.stop() is True
        stream.queue.put_nowait("lo!")
        await task

        assert stream.cancelled is True
        assert controller.lifecycle is Lifecycle.STOPPED
        assert controller.messages[-1].content == "Hel"
        assert controller.error is None

    async def test_late_delta_ignored_after_stop(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("Hel")
        controller.stop()
        await task

        assert controller.append_delta("lo!") is False
        assert controller.messages[-1].content == "Hel"

    async def test_stop_persists_partial_turn(
        self,
        controller: ConversationController,
        transport: FakeTransport,
        store: ConversationStore,
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("Hel")
        controller.stop()
        await task

        snapshot = store.load()
        assert snapshot is not None
        assert snapshot.messages[-1].content == "Hel"

    async def test_cancelled_send_task_stops_turn(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("Hel")

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.lifecycle is Lifecycle.STOPPED
        assert controller.messages[-1].content == "Hel"

    async def test_next_turn_waits_for_stopped_request_to_close(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        first_task = await start(controller.send("one"))
        first = transport.stream
        first.hold_close = asyncio.Event()
        controller.stop()

        second_task = await start(controller.send("two"))
        await asyncio.sleep(0)

        assert len(transport.streams) == 1
        assert controller.is_streaming

        first.hold_close.set()
        await first_task
        await asyncio.wait_for(until(lambda: len(transport.streams) == 2), timeout=2.0)
        await transport.stream.push("Hi")
        await transport.stream.push(None)
        await second_task

        assert first.closed is True
        assert [m.content for m in controller.messages] == ["one", "", "two", "Hi"]
        assert controller.lifecycle is Lifecycle.COMPLETED

    async def test_turn_stopped_before_request_opens_sends_nothing(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        first_task = await start(controller.send("one"))
        transport.stream.hold_close = asyncio.Event()
        controller.stop()
        second_task = await start(controller.send("two"))

        assert controller.stop() is True
        transport.stream.hold_close.set()
        await first_task
        await second_task

        assert len(transport.requests) == 1
        assert controller.lifecycle is Lifecycle.STOPPED
        assert controller.messages[-1].content == ""


class TestRetry:
    """Tests for retry() after a failed or stopped turn."""

    async def test_retry_after_error_resends_user_message(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("Hel")
        await transport.stream.push(TransportError())
        await task
        assert len(controller.messages) == 2

        task = await start(controller.retry())
        messages = controller.messages
        assert [m.role for m in messages] == [Role.USER, Role.ASSISTANT]
        assert messages[-1].content == ""
        assert controller.lifecycle is Lifecycle.STREAMING

        await transport.stream.push("Hello!")
        await transport.stream.push(None)
        assert await task is True

        history, _ = transport.requests[-1]
        assert [(m.role, m.content) for m in history] == [("user", "hi")]
        assert [m.content for m in controller.messages] == ["hi", "Hello!"]
        assert controller.lifecycle is Lifecycle.COMPLETED
        assert controller.error is None

    async def test_retry_after_stop(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("Hel")
        controller.stop()
        await task

        task = await start(controller.retry())
        await transport.stream.push("Hey")
        await transport.stream.push(None)
        await task

        assert [m.content for m in controller.messages] == ["hi", "Hey"]

    async def test_retry_rejected_after_completion(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("ok")
        await transport.stream.push(None)
        await task

        assert await controller.retry() is False
        assert len(controller.messages) == 2
        assert len(transport.requests) == 1

    async def test_retry_rejected_when_idle(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        assert await controller.retry() is False
        assert transport.requests == []


class TestClearAndModel:
    """Tests for clear() and switch_model()."""

    async def test_clear_resets_state_and_storage(
        self,
        controller: ConversationController,
        transport: FakeTransport,
        kv_data: dict[str, Any],
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("ok")
        await transport.stream.push(None)
        await task
        assert CHAT_HISTORY_KEY in kv_data

        controller.clear()

        assert controller.messages == ()
        assert controller.lifecycle is Lifecycle.IDLE
        assert CHAT_HISTORY_KEY not in kv_data

    async def test_clear_while_streaming_cancels(
        self, controller: ConversationController, transport: FakeTransport
    ) -> None:
        task = await start(controller.send("hi"))
        stream = transport.stream
        await stream.push("Hel")

        controller.clear()
        await task

        assert stream.cancelled is True
        assert controller.messages == ()
        assert controller.lifecycle is Lifecycle.IDLE

    async def test_switch_model_persists_without_touching_messages(
        self,
        controller: ConversationController,
        transport: FakeTransport,
        kv_data: dict[str, Any],
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("ok")
        await transport.stream.push(None)
        await task
        before = controller.messages

        assert controller.switch_model("gpt-3.5-turbo") is ModelId.GPT_35_TURBO

        assert controller.messages == before
        assert json.loads(kv_data[SELECTED_MODEL_KEY]) == "gpt-3.5-turbo"
        assert json.loads(kv_data[CHAT_HISTORY_KEY])["model"] == "gpt-3.5-turbo"

        task = await start(controller.send("again"))
        await transport.stream.push(None)
        await task
        assert transport.requests[-1][1] is ModelId.GPT_35_TURBO

    def test_unknown_model_falls_back_to_default(
        self, controller: ConversationController
    ) -> None:
        controller.switch_model(ModelId.GPT_35_TURBO)
        assert controller.switch_model("gpt-9000") is ModelId.GPT_4O

    async def test_switch_model_while_streaming_skips_history(
        self,
        controller: ConversationController,
        transport: FakeTransport,
        kv_data: dict[str, Any],
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("Hel")

        controller.switch_model(ModelId.GPT_35_TURBO)

        assert SELECTED_MODEL_KEY in kv_data
        assert CHAT_HISTORY_KEY not in kv_data

        await transport.stream.push(None)
        await task
        assert json.loads(kv_data[CHAT_HISTORY_KEY])["model"] == "gpt-3.5-turbo"


class TestRestore:
    """Tests for restoring persisted conversations."""

    def test_restores_snapshot_and_model(self, transport: FakeTransport) -> None:
        data: dict[str, Any] = {}
        store = ConversationStore(MappingKeyValueStore(data))
        snapshot = ConversationSnapshot(
            messages=[
                Message(role=Role.USER, content="hi"),
                Message(role=Role.ASSISTANT, content="Hello!"),
            ],
            model=ModelId.GPT_4O,
        )
        store.save(snapshot)
        store.save_model(ModelId.GPT_35_TURBO)

        controller = ConversationController(transport, store)

        assert list(controller.messages) == snapshot.messages
        assert controller.model is ModelId.GPT_35_TURBO
        assert controller.lifecycle is Lifecycle.IDLE

    async def test_corrupt_storage_leaves_memory_untouched(
        self,
        controller: ConversationController,
        transport: FakeTransport,
        kv_data: dict[str, Any],
    ) -> None:
        task = await start(controller.send("hi"))
        await transport.stream.push("ok")
        await transport.stream.push(None)
        await task
        before = controller.messages

        kv_data[CHAT_HISTORY_KEY] = "{not json"

        assert controller.restore() is False
        assert controller.messages == before

    async def test_storage_failure_does_not_break_conversation(
        self, transport: FakeTransport
    ) -> None:
        changes: list[str | None] = []
        controller = ConversationController(
            transport, ConversationStore(BrokenKeyValueStore())
        )
        controller.on_change = lambda: changes.append(controller.storage_warning)

        task = await start(controller.send("hi"))
        await transport.stream.push("Hello!")
        await transport.stream.push(None)
        await task

        assert controller.lifecycle is Lifecycle.COMPLETED
        assert controller.messages[-1].content == "Hello!"
        assert controller.storage_warning is not None
        assert "quota exceeded" in controller.storage_warning
        assert any(warning for warning in changes)
