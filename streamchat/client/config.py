"""Chat client configuration with environment variable loading."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

_WILDCARD_HOSTS = {"", "0.0.0.0", "::", "[::]"}


def _api_base_url_from_env() -> str:
    """API_BASE_URL, else the address the bundled API server binds to."""
    url = os.getenv("API_BASE_URL")
    if url:
        return url
    host = os.getenv("HOST", "localhost")
    if host in _WILDCARD_HOSTS:
        host = "localhost"
    return f"http://{host}:{os.getenv('PORT', '8000')}"


def _storage_dir_from_env() -> Path | None:
    value = os.getenv("CHAT_STORAGE_DIR")
    return Path(value) if value else None


class ClientConfig(BaseModel):
    """Configuration for the chat client.

    Attributes:
        api_base_url: Base URL of the routing layer. Defaults to the
            server's own HOST/PORT so the integrated app talks to itself.
        timeout: Request timeout in seconds.
        storage_dir: Directory for durable conversation storage.
            None keeps history in memory only.
    """

    api_base_url: str = Field(default_factory=_api_base_url_from_env)
    timeout: float = Field(
        default_factory=lambda: float(os.getenv("CHAT_TIMEOUT", "120")),
        gt=0,
    )
    storage_dir: Path | None = Field(
        default_factory=_storage_dir_from_env,
    )


def get_client_config() -> ClientConfig:
    """Create client configuration from environment."""
    return ClientConfig()
