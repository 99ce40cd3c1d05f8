"""Chat client core: conversation state, streaming transport and persistence.

Components:
    - controller: ConversationController state machine (send, stop, retry,
      clear, switch_model)
    - transport: ChatTransport / DeltaStream over the SSE chat endpoint
    - store: ConversationStore snapshot persistence with pluggable backends
"""

from streamchat.client.config import ClientConfig, get_client_config
from streamchat.client.controller import ConversationController
from streamchat.client.store import (
    ConversationStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    MappingKeyValueStore,
)
from streamchat.client.transport import (
    CancellationToken,
    ChatTransport,
    DeltaStream,
)

__all__ = [
    "CancellationToken",
    "ChatTransport",
    "ClientConfig",
    "ConversationController",
    "ConversationStore",
    "DeltaStream",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MappingKeyValueStore",
    "get_client_config",
]
