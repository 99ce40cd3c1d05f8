"""Unit tests for individual components in isolation.

Coverage:
    - models/: Pydantic validation and serialization
    - errors: Provider error classification
    - agent/: Provider configuration and Agno wiring
    - client/: State machine, frame decoding, transport and persistence

Uses fakes for the transport and mocks for Agno classes.
"""
