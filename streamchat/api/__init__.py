"""FastAPI endpoints for the chat proxy.

Endpoints:
    - GET /health: Service health status
    - POST /chat/stream: Streaming chat completion (Server-Sent Events)
"""

from streamchat.api.app import app, create_app

__all__ = ["app", "create_app"]
