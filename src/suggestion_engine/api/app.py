"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from suggestion_engine.api.errors import register_error_handlers
from suggestion_engine.api.middleware import RequestTimingMiddleware
from suggestion_engine.api.routes_feedback import router as feedback_router
from suggestion_engine.api.routes_health import router as health_router
from suggestion_engine.api.routes_queue import router as queue_router
from suggestion_engine.api.routes_suggestions import router as suggestions_router
from suggestion_engine.config.settings import Settings
from suggestion_engine.observability.logger import get_logger, setup_logging
from suggestion_engine.services import ServiceContainer

logger = get_logger("app")


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Build the app; a prebuilt container can be passed in (tests use a mock provider)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = services
        if container is None:
            settings = Settings()
            setup_logging(settings.log_level, settings.log_json)
            container = ServiceContainer.create(settings)
        await container.start()
        app.state.services = container

        logger.info(
            "startup_complete",
            provider_type=container.settings.provider_type,
            feedback_records=len(container.feedback),
        )

        yield

        await container.aclose()
        logger.info("shutdown_complete")

    app = FastAPI(
        title="Suggestion Engine",
        version="1.0.0",
        description="LLM orchestration layer for research-assistant suggestions",
        lifespan=lifespan,
    )
    app.add_middleware(RequestTimingMiddleware)
    register_error_handlers(app)
    app.include_router(health_router, tags=["health"])
    app.include_router(suggestions_router, tags=["suggestions"])
    app.include_router(feedback_router, tags=["feedback"])
    app.include_router(queue_router, tags=["queue"])
    return app
