"""Integration tests for components working together as a system.

Coverage:
    - API endpoints with real HTTP requests through ASGITransport
    - Conversation controller streaming through the real API

The provider is a scripted fake injected via FastAPI dependency overrides.
"""
