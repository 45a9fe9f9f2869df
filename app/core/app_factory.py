"""Application factory for the FastAPI app.

Owns the admission-control object graph: the usage store, the admission
service and the expiry sweeper are built here, attached to ``app.state`` and
injected into routes through dependencies. The sweeper's lifetime is scoped to
the application lifespan.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.factory import create_llm_client
from app.api.routes import admission_router, chat_router, health_router
from app.core.admission import build_admission
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.services.chat_service import ChatService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the expiry sweeper on startup and stop it on shutdown."""

    sweeper = app.state.expiry_sweeper
    await sweeper.start()
    logger.warning(
        "admission.single_process_scope",
        extra={
            "hint": (
                "Usage counters live in this process only; running N workers "
                "multiplies every limit by N."
            ),
        },
    )
    try:
        yield
    finally:
        await sweeper.stop()


def create_app(
    app_settings: Settings | None = None,
    *,
    llm_client: AbstractLLMClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; defaults to the environment.
        llm_client: Pre-built LLM client (tests inject a fake here).

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Chat Admission API",
        description=(
            "Conversational endpoint backed by a metered language model, "
            "protected by per-client admission control: burst and hourly "
            "request limits, a daily usage budget in estimated tokens, and a "
            "cap on concurrent sessions."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    admission_service, sweeper = build_admission(cfg.rate_limit)
    app.state.admission_service = admission_service
    app.state.expiry_sweeper = sweeper
    app.state.chat_service = ChatService(
        llm_client or create_llm_client(cfg.llm),
        system_prompt=cfg.app.system_prompt,
        max_messages=cfg.app.max_messages,
        max_message_chars=cfg.app.max_message_chars,
        completion_options={
            "temperature": cfg.llm.temperature,
            "max_tokens": cfg.llm.max_tokens,
        },
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(chat_router, prefix="/v1")
    app.include_router(admission_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
