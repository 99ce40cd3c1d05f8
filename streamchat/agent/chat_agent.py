"""Agno-backed inference provider with streaming support.

The provider is a stateless black box: it receives the whole conversation on
every call, prepends the fixed system instruction, and yields text deltas as
the model produces them. Conversation history lives on the client.

Architecture Decisions:

1. **One Agent per request** - Agno agents carry run state. The conversation
   history arrives with each request, so there is no session to share and a
   fresh agent keeps concurrent requests independent.

2. **Singleton service** - Configuration is read once and reused across all
   requests.

3. **Errors as exceptions** - Failures are raised as ``ProviderError`` with the
   provider's status code when one exists. Classification into the stable
   taxonomy happens at the HTTP boundary, not here.
"""

import logging
from collections.abc import AsyncGenerator, Sequence
from typing import Protocol

from agno.agent import Agent
from agno.models.message import Message
from agno.models.openai import OpenAIChat
from agno.run.agent import RunEvent

from streamchat.agent.config import ProviderConfig, get_provider_config
from streamchat.errors import ProviderError
from streamchat.models.schemas import ChatMessage, ModelId

logger = logging.getLogger(__name__)


class ChatProvider(Protocol):
    """Anything that can stream a completion for a message list."""

    def stream(
        self, messages: Sequence[ChatMessage], model: ModelId
    ) -> AsyncGenerator[str]: ...


class AgentService:
    """Inference provider built on Agno's Agent and OpenAIChat model."""

    def __init__(self, config: ProviderConfig | None = None) -> None:
        """Initialize the agent service.

        Args:
            config: Optional provider configuration.
                    Loads from environment if not provided.
        """
        self._config = config or get_provider_config()

    def _create_agent(self, model: ModelId) -> Agent:
        """Create an Agno agent for a single request.

        Args:
            model: Model that should serve the request.

        Returns:
            Agent with the system instruction and generation settings applied.
        """
        llm = OpenAIChat(
            id=model.value,
            api_key=self._config.api_key,
            base_url=self._config.base_url,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
        )

        return Agent(
            model=llm,
            instructions=self._config.system_prompt,
            markdown=True,
            telemetry=False,
        )

    async def stream(
        self,
        messages: Sequence[ChatMessage],
        model: ModelId,
    ) -> AsyncGenerator[str]:
        """Stream response deltas for a conversation.

        Args:
            messages: Conversation so far, oldest first.
            model: Model that should serve the request.

        Yields:
            Response text chunks as they arrive.

        Raises:
            ProviderError: If the provider call fails.
        """
        if not self._config.has_api_key:
            raise ProviderError("OpenAI API key is not configured", status_code=401)

        agent = self._create_agent(model)
        history = [Message(role=m.role, content=m.content) for m in messages]

        logger.debug(f"Streaming {len(history)} messages with model {model.value}")

        async for event in agent.arun(history, stream=True):
            kind = getattr(event, "event", None)
            if kind == RunEvent.run_error:
                raise ProviderError(str(event.content or "Provider run failed"))
            if kind == RunEvent.run_content and event.content:
                yield event.content


# Module-level singleton instance
_agent_service: AgentService | None = None


def get_agent_service() -> AgentService:
    """Get or create the global agent service.

    Returns:
        The AgentService instance.
    """
    global _agent_service
    if _agent_service is None:
        _agent_service = AgentService()
    return _agent_service
