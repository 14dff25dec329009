"""FastAPI application factory and entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI

from xpmanager import __version__
from xpmanager.api.middleware import CorrelationIdMiddleware, add_exception_handlers
from xpmanager.api.routes import experiments, projects, system
from xpmanager.config import Settings
from xpmanager.db import Database
from xpmanager.logging import configure_logging
from xpmanager.publisher import LogPublisher, NullPublisher
from xpmanager.segmenters import SegmenterService
from xpmanager.services import ExperimentService, ProjectSettingsService
from xpmanager.validation import ExternalValidationClient, TreatmentSchemaValidator

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from xpmanager.protocols import MessagePublisherPort

logger = structlog.get_logger()


def build_services(
    db: Database,
    settings: Settings,
    publisher: MessagePublisherPort | None = None,
) -> tuple[ExperimentService, ProjectSettingsService]:
    """Wire the services over *db* with the default adapters."""
    if publisher is None:
        publisher = LogPublisher() if settings.publisher == "log" else NullPublisher()
    experiment_service = ExperimentService(
        db=db,
        segmenters=SegmenterService(),
        schema_validator=TreatmentSchemaValidator(),
        external_validator=ExternalValidationClient(timeout=settings.validation_timeout_seconds),
        publisher=publisher,
    )
    return experiment_service, ProjectSettingsService(db, experiment_service)


def attach_state(
    app: FastAPI,
    db: Database,
    settings: Settings,
    publisher: MessagePublisherPort | None = None,
) -> None:
    experiment_service, project_service = build_services(db, settings, publisher)
    app.state.db = db
    app.state.settings = settings
    app.state.experiment_service = experiment_service
    app.state.project_service = project_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize DB, settings and services on startup, cleanup on shutdown."""
    settings = Settings()
    settings.ensure_data_dir()

    configure_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
    )

    db = Database(
        settings.db_path,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
    db.init_schema()
    attach_state(app, db, settings)

    logger.info("xpmanager API started", host=settings.api_host, port=settings.api_port)
    yield

    db.close()
    logger.info("xpmanager API shut down")


def include_routes(app: FastAPI) -> None:
    prefix = "/api/v1"
    app.include_router(system.router, prefix=prefix)
    app.include_router(projects.router, prefix=prefix)
    app.include_router(experiments.router, prefix=prefix)


def create_app() -> FastAPI:
    """Application factory."""
    app = FastAPI(
        title="xpmanager",
        description="Experiment management with tier-scoped orthogonality checks",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(CorrelationIdMiddleware)
    add_exception_handlers(app)

    # Prometheus metrics endpoint
    from prometheus_client import make_asgi_app

    app.mount("/metrics", make_asgi_app())
    include_routes(app)

    return app


def main() -> None:
    """Entry point for `xpmanager-api` command."""
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "xpmanager.api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
    )
