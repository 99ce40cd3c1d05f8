"""Server entry point.

``RUN_MODE=integrated`` (default) serves the chat API and the NiceGUI page
from one uvicorn process on HOST:PORT. ``RUN_MODE=separate`` starts the API
on PORT and the UI on UI_PORT as two child processes. Either way the page's
client reaches the API through ``ClientConfig.api_base_url``, which follows
HOST/PORT unless API_BASE_URL is set.
"""

import logging
import os
import subprocess
import sys
import time
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables before any other imports that might need them
load_dotenv()

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """How and where the servers run.

    Attributes:
        host: Interface to bind.
        port: Port of the chat API (and of the page in integrated mode).
        ui_port: Port of the NiceGUI page in separate mode.
        log_level: Root log level name.
        run_mode: ``integrated`` or ``separate``.
    """

    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "8000")), gt=0, lt=65536)
    ui_port: int = Field(
        default_factory=lambda: int(os.getenv("UI_PORT", "8080")), gt=0, lt=65536
    )
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    run_mode: Literal["integrated", "separate"] = Field(
        default_factory=lambda: os.getenv("RUN_MODE", "integrated")
    )

    @field_validator("log_level", "run_mode", mode="before")
    @classmethod
    def normalize_case(cls, v: str) -> str:
        return v.strip().lower()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def run_integrated(config: ServerConfig) -> None:
    """Mount the NiceGUI page on the FastAPI app and serve both."""
    import uvicorn
    from nicegui import ui

    from streamchat.api.app import create_app
    from streamchat.ui.chat_page import STORAGE_SECRET
    from streamchat.ui.chat_page import chat_page  # noqa: F401 - Registers the page

    app = create_app()
    ui.run_with(app, title="AI Chat", storage_secret=STORAGE_SECRET)

    logger.info(f"Serving chat API and UI on {config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level)


def run_separate(config: ServerConfig) -> None:
    """Run the API and the UI as child processes until either one exits."""
    api_cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "streamchat.api.app:app",
        "--host",
        config.host,
        "--port",
        str(config.port),
        "--log-level",
        config.log_level,
    ]
    ui_cmd = [sys.executable, "-c", "from streamchat.ui.chat_page import main; main()"]
    env = {**os.environ, "PORT": str(config.port), "UI_PORT": str(config.ui_port)}

    logger.info(f"Starting chat API on {config.host}:{config.port}")
    logger.info(f"Starting chat UI on port {config.ui_port}")
    processes = [subprocess.Popen(api_cmd, env=env), subprocess.Popen(ui_cmd, env=env)]
    try:
        while all(proc.poll() is None for proc in processes):
            time.sleep(1)
        logger.warning("A server process exited, shutting down the other")
    except KeyboardInterrupt:
        logger.info("Shutting down servers...")
    finally:
        for proc in processes:
            proc.terminate()
        for proc in processes:
            proc.wait()


def main() -> None:
    """Console entry point."""
    config = ServerConfig()
    configure_logging(config.log_level)
    logger.info(f"Starting streamchat in {config.run_mode} mode")

    if config.run_mode == "separate":
        run_separate(config)
    else:
        run_integrated(config)


if __name__ == "__main__":
    main()
