"""Agno agent logic for the inference provider.

Responsibilities:
    - Agent initialization with OpenAI models
    - Prepending the fixed system instruction to every request
    - Streaming token generation for a client-supplied message list

Leverages the Agno framework for model calls.
Maintains clean separation from the HTTP layer.
"""

from streamchat.agent.chat_agent import AgentService, ChatProvider, get_agent_service
from streamchat.agent.config import ProviderConfig, get_provider_config

__all__ = [
    "AgentService",
    "ChatProvider",
    "ProviderConfig",
    "get_agent_service",
    "get_provider_config",
]
