"""Provider configuration with environment variable loading.

Pydantic-based configuration for the Agno-backed inference provider.
Supports OpenAI and OpenAI-compatible APIs via custom base URL.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()

SYSTEM_PROMPT = """You are a helpful, friendly, and knowledgeable AI assistant. \
You provide clear, accurate, and well-structured responses. When appropriate, \
you use markdown formatting to enhance readability, including:
- Code blocks with syntax highlighting for code snippets
- Bullet points and numbered lists for organized information
- Headers for longer responses
- Bold and italic text for emphasis

You're conversational but professional, and you always aim to be helpful \
while being honest about your limitations."""


class ProviderConfig(BaseModel):
    """Configuration for the inference provider.

    The API key may be empty: requests then fail with an "API key" error
    that the routing layer reports as 401 instead of refusing to start.

    Attributes:
        api_key: API key for model access.
        base_url: API base URL (None for OpenAI default).
        temperature: Sampling temperature (0.0 = deterministic, 2.0 = creative).
        max_tokens: Maximum tokens in generated response.
        system_prompt: Instruction prepended to every request.
    """

    api_key: str = Field(
        default_factory=lambda: os.getenv("LLM_API_KEY", os.getenv("OPENAI_API_KEY", "")),
        description="API key for LLM provider",
    )
    base_url: str | None = Field(
        default_factory=lambda: os.getenv("LLM_BASE_URL") or None,
        description="API base URL (None for OpenAI default)",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for response generation",
    )
    max_tokens: int = Field(
        default=4096,
        ge=1,
        le=128000,
        description="Maximum tokens in generated response",
    )
    system_prompt: str = Field(default=SYSTEM_PROMPT, min_length=1)

    @field_validator("api_key")
    @classmethod
    def strip_api_key(cls, v: str) -> str:
        """Strip surrounding whitespace from the API key."""
        return v.strip()

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)


def get_provider_config() -> ProviderConfig:
    """Create provider configuration from environment.

    Returns:
        Configured ProviderConfig instance.
    """
    return ProviderConfig()
