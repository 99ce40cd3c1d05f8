"""NiceGUI chat interface driven by a ConversationController."""

import os

from nicegui import app, ui

from streamchat.client.config import get_client_config
from streamchat.client.controller import ConversationController
from streamchat.client.store import (
    ConversationStore,
    JsonFileKeyValueStore,
    MappingKeyValueStore,
)
from streamchat.client.transport import ChatTransport
from streamchat.models.conversation import ErrorInfo, Lifecycle, Message, Role
from streamchat.models.schemas import AVAILABLE_MODELS

CUSTOM_CSS = """
<style>
    body { background: #f5f5f5; min-height: 100vh; }

    .app-container {
        background: white;
        border-radius: 12px;
        box-shadow: 0 2px 8px rgba(0, 0, 0, 0.1);
        overflow: hidden;
    }

    .header { background: linear-gradient(135deg, #10b981 0%, #0d9488 100%); }

    .message-user {
        background: linear-gradient(135deg, #10b981 0%, #0d9488 100%);
        color: white;
        border-radius: 18px 18px 4px 18px;
    }

    .message-assistant {
        background: #f3f4f6;
        color: #1f2937;
        border-radius: 18px 18px 18px 4px;
    }

    .typing-dot {
        width: 8px; height: 8px;
        background: #10b981;
        border-radius: 50%;
        animation: bounce 1.4s infinite ease-in-out;
    }
    .typing-dot:nth-child(2) { animation-delay: 0.2s; }
    .typing-dot:nth-child(3) { animation-delay: 0.4s; }

    @keyframes bounce {
        0%, 60%, 100% { transform: translateY(0); }
        30% { transform: translateY(-6px); }
    }

    .input-box {
        background: #f9fafb;
        border: 1px solid #e5e7eb;
        border-radius: 12px;
    }
</style>
"""

STORAGE_SECRET = os.getenv("NICEGUI_STORAGE_SECRET", "streamchat-secret")


def create_store() -> ConversationStore:
    """Pick the conversation store for the current browser session.

    ``CHAT_STORAGE_DIR`` selects a file-backed store shared by every session;
    otherwise history lives in NiceGUI's per-browser user storage.
    """
    config = get_client_config()
    if config.storage_dir is not None:
        return ConversationStore(JsonFileKeyValueStore(config.storage_dir))
    return ConversationStore(MappingKeyValueStore(app.storage.user))


def retry_label(lifecycle: Lifecycle, error: ErrorInfo | None) -> str | None:
    """Label for the button that re-runs the last turn, or None if it can't be re-run."""
    if lifecycle is Lifecycle.STOPPED:
        return "Regenerate"
    if lifecycle is Lifecycle.ERRORED and error is not None and error.retryable:
        return "Try again"
    return None


@ui.page("/")
def chat_page() -> None:
    """Main chat page. Each visit gets its own controller."""
    ui.add_head_html(CUSTOM_CSS)
    config = get_client_config()
    controller = ConversationController(
        ChatTransport(config.api_base_url, timeout=config.timeout),
        create_store(),
    )

    input_field: ui.textarea
    send_btn: ui.button
    stop_btn: ui.button

    def render_message(msg: Message) -> None:
        is_user = msg.role is Role.USER
        align = "justify-end" if is_user else "justify-start"
        bubble = "message-user" if is_user else "message-assistant"
        time_text = msg.created_at.astimezone().strftime("%I:%M %p")

        with ui.row().classes(f"w-full {align}"):
            with ui.column().classes("max-w-[70%] gap-1"):
                with ui.element("div").classes(f"px-4 py-3 {bubble}"):
                    if is_user:
                        ui.label(msg.content).classes("text-sm whitespace-pre-wrap")
                    else:
                        ui.markdown(msg.content).classes("text-sm")
                ui.label(time_text).classes(
                    f"text-[10px] text-gray-400 {'self-end' if is_user else 'self-start'}"
                )

    def render_typing() -> None:
        with ui.row().classes("w-full justify-start"):
            with ui.element("div").classes("message-assistant px-4 py-3"):
                with ui.row().classes("gap-1"):
                    for _ in range(3):
                        ui.element("div").classes("typing-dot")

    def render_error() -> None:
        error = controller.error
        with ui.card().classes("w-full bg-red-50 border border-red-200"):
            ui.label("Something went wrong").classes("text-sm font-medium text-red-700")
            ui.label(error.message).classes("text-sm text-red-600")
            label = retry_label(controller.lifecycle, error)
            if label:
                ui.button(label, icon="refresh", on_click=retry).props(
                    "flat dense color=negative"
                )

    def render_stopped() -> None:
        with ui.row().classes("w-full justify-start items-center gap-2"):
            ui.label("Response stopped").classes("text-xs text-gray-400")
            label = retry_label(controller.lifecycle, controller.error)
            ui.button(label, icon="refresh", on_click=retry).props(
                "flat dense no-caps color=grey-7"
            )

    @ui.refreshable
    def message_list() -> None:
        messages = controller.messages
        if not messages:
            with ui.column().classes("w-full h-64 items-center justify-center gap-3"):
                ui.icon("forum").classes("text-5xl text-gray-300")
                ui.label("Start a conversation").classes("text-lg text-gray-400")
            return

        for msg in messages:
            if msg.role is Role.ASSISTANT and not msg.content:
                continue
            render_message(msg)
        if controller.is_streaming and not messages[-1].content:
            render_typing()
        if controller.lifecycle is Lifecycle.ERRORED and controller.error:
            render_error()
        elif controller.lifecycle is Lifecycle.STOPPED:
            render_stopped()

    def on_change() -> None:
        message_list.refresh()
        send_btn.set_enabled(not controller.is_streaming)
        stop_btn.set_visibility(controller.is_streaming)
        if controller.storage_warning:
            ui.notify(controller.storage_warning, type="warning")
            controller.storage_warning = None

    async def send_message() -> None:
        text = input_field.value or ""
        if not text.strip() or controller.is_streaming:
            return
        input_field.value = ""
        await controller.send(text)

    async def retry() -> None:
        await controller.retry()

    def clear_chat() -> None:
        controller.clear()
        ui.notify("Conversation cleared")

    # === UI Layout ===
    with (
        ui.element("div").classes("w-full min-h-screen p-4 md:p-8"),
        ui.column().classes("w-full max-w-3xl mx-auto app-container").style(
            "height: calc(100vh - 4rem)"
        ),
    ):
        # Header
        with ui.row().classes("w-full header px-5 py-4 items-center justify-between"):
            with ui.row().classes("items-center gap-3"):
                ui.icon("chat").classes("text-white text-3xl")
                ui.label("AI Chat").classes("text-lg font-semibold text-white")
            with ui.row().classes("items-center gap-3"):
                ui.select(
                    {option.id.value: option.name for option in AVAILABLE_MODELS},
                    value=controller.model.value,
                    on_change=lambda e: controller.switch_model(e.value),
                ).props("dense outlined dark").classes("w-40")
                ui.button(icon="delete", on_click=clear_chat).props("flat round color=white")

        # Messages
        with (
            ui.scroll_area().classes("flex-grow w-full bg-gray-50"),
            ui.column().classes("w-full p-5 gap-4"),
        ):
            message_list()

        # Input
        with ui.row().classes("w-full p-4 gap-3 items-end bg-white border-t"):
            with ui.element("div").classes("flex-grow input-box px-3 py-2"):
                input_field = (
                    ui.textarea(placeholder="Ask me anything...")
                    .props("autogrow borderless dense rows=1")
                    .classes("w-full")
                    .on("keydown.enter.prevent", send_message)
                )
            stop_btn = ui.button(icon="stop", on_click=controller.stop).props(
                "round unelevated color=negative"
            )
            send_btn = ui.button(icon="send", on_click=send_message).props(
                "round unelevated color=positive"
            )

    stop_btn.set_visibility(False)
    controller.on_change = on_change


def main() -> None:
    """Serve the page on its own, talking to the API at API_BASE_URL or HOST/PORT."""
    ui.run(
        title="AI Chat",
        port=int(os.getenv("UI_PORT", "8080")),
        reload=False,
        storage_secret=STORAGE_SECRET,
    )


if __name__ == "__main__":
    main()
