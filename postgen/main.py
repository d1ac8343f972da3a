"""
postgen - multi-pass social media post generation service.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from postgen import __version__
from postgen.config import get_settings
from postgen.api.router import api_router
from postgen.container import ServiceContainer
from postgen.services.session_cache import InMemorySessionCache
from postgen.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("postgen")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("postgen starting up (env=%s)", settings.app_env)

    container = getattr(app.state, "container", None)
    if container is None:
        container = ServiceContainer.from_settings(settings)
        app.state.container = container

    if container.llm is None:
        logger.warning(
            "No LLM provider configured - generation endpoints will return 502. "
            "Set ANTHROPIC_API_KEY and/or OPENAI_API_KEY."
        )

    worker_tasks: list[asyncio.Task] = []

    # Redis expires sessions natively; only the in-memory cache needs sweeping
    sweep_interval = container.settings.session_sweep_interval_seconds
    if isinstance(container.session_cache, InMemorySessionCache) and sweep_interval > 0:
        from postgen.workers.session_sweeper import run_session_sweeper
        worker_tasks.append(asyncio.create_task(
            run_session_sweeper(container.session_cache, sweep_interval)
        ))
        logger.info("Session sweeper started")

    yield

    logger.info("postgen shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        await asyncio.gather(*worker_tasks, return_exceptions=True)
    await container.aclose()
    logger.info("postgen shutdown complete")


def create_app(container: ServiceContainer = None) -> FastAPI:
    """Application factory. Tests may pass a prebuilt container."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="postgen",
        description="Multi-pass social media post generation",
        version=__version__,
        lifespan=lifespan,
    )
    if container is not None:
        application.state.container = container

    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID", "Accept", "Origin"],
        expose_headers=["X-Session-ID", "X-Correlation-ID"],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
