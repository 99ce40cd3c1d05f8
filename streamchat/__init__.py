"""streamchat - streaming chat client for hosted language models.

Combines FastAPI for the streaming proxy, Agno for provider calls,
NiceGUI for the chat interface, httpx for the streaming client,
and Pydantic for data validation.

Components:
    - api: Request validation, provider routing and SSE streaming
    - agent: Agno-backed inference provider
    - client: Conversation state machine, streaming transport, persistence
    - ui: Web interface for chat interactions
    - models: Wire and conversation schemas
"""

__version__ = "0.1.0"
