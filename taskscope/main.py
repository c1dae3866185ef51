"""taskscope - FastAPI Application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskscope import __version__
from taskscope.api import router as api_router
from taskscope.config import ServiceSettings, get_settings
from taskscope.services import register_audit_handlers
from taskscope.shared.database import db_manager
from taskscope.shared.errors import register_exception_handlers
from taskscope.shared.events.dispatcher import event_dispatcher
from taskscope.shared.middleware import RequestContextMiddleware, TaskAuditMiddleware
from taskscope.shared.models import HealthResponse

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger("taskscope")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    settings: ServiceSettings = app.state.settings
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info("Starting %s on port %s", settings.service_name, settings.service_port)

    db_manager.init(settings.database_url, echo=settings.database_echo)
    if settings.create_tables:
        import taskscope.models  # noqa: F401 - register models on the metadata
        await db_manager.create_all()
        logger.info("Database tables created")

    await event_dispatcher.start(maxsize=settings.audit_queue_size)
    register_audit_handlers(event_dispatcher, db_manager.session_factory)

    yield

    # Shutdown: deliver pending audit events before the engine goes away
    await event_dispatcher.stop()
    await db_manager.close()
    logger.info("%s stopped", settings.service_name)


def create_app(settings: Optional[ServiceSettings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="taskscope",
        description="Multi-tenant task management with organization-scoped RBAC and audit logging",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.jwt_public_key = settings.jwt_public_key
    app.state.jwt_private_key = settings.jwt_private_key

    # Last added runs first: request context wraps audit capture
    app.add_middleware(TaskAuditMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        return HealthResponse(service=settings.service_name, version=__version__)

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("taskscope.main:create_app", factory=True, host="0.0.0.0", port=settings.service_port)


if __name__ == "__main__":
    run()
