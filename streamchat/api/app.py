"""FastAPI application factory and configuration.

Main application entry point with lifespan management, middleware,
error translation and router registration.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from streamchat.api.chat import router as chat_router
from streamchat.errors import ChatError
from streamchat.models.schemas import ErrorBody

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application while it runs.
    """
    logger.info("Starting streamchat API...")
    yield
    logger.info("Shutting down streamchat API...")


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Render a ChatError as ``{"error": message}`` with its status code."""
    if exc.status_code and exc.status_code < 500:
        logger.warning(f"{request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code or 500,
        content=ErrorBody(error=exc.message).model_dump(),
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    application = FastAPI(
        title="streamchat API",
        description=(
            "Streaming chat completion proxy. Validates conversation requests, "
            "prepends the assistant system instruction, forwards them to the "
            "inference provider and relays the response as Server-Sent Events."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    application.add_exception_handler(ChatError, chat_error_handler)
    application.include_router(chat_router)

    @application.get("/health")
    async def health_check() -> dict[str, str]:
        """Check service health status."""
        return {"status": "healthy", "service": "streamchat"}

    return application


app = create_app()
