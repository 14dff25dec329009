"""FastAPI test client fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from xpmanager.api.app import attach_state, include_routes
from xpmanager.api.middleware import CorrelationIdMiddleware, add_exception_handlers

if TYPE_CHECKING:
    from xpmanager.config import Settings
    from xpmanager.db import Database
    from xpmanager.models.project import ProjectSettings
    from xpmanager.publisher import InMemoryPublisher


def _create_test_app(db: Database, settings: Settings, publisher: InMemoryPublisher) -> FastAPI:
    """Create a FastAPI app with injected test db/settings (no lifespan)."""
    app = FastAPI(title="xpmanager Test")

    attach_state(app, db, settings, publisher)

    app.add_middleware(CorrelationIdMiddleware)
    add_exception_handlers(app)
    include_routes(app)

    return app


@pytest.fixture()
def client(db: Database, settings: Settings, publisher: InMemoryPublisher) -> TestClient:
    return TestClient(_create_test_app(db, settings, publisher))


@pytest.fixture()
def project_client(
    project: ProjectSettings, db: Database, settings: Settings, publisher: InMemoryPublisher
) -> TestClient:
    """Client over a database that already holds settings for project 1."""
    return TestClient(_create_test_app(db, settings, publisher))


@pytest.fixture()
def experiment_body():
    def _body(name: str, country: str = "SG", **overrides) -> dict:
        body = {
            "name": name,
            "start_time": "2030-01-01T00:00:00Z",
            "end_time": "2030-01-02T00:00:00Z",
            "segment": {"country": [country]},
            "status": "active",
            "tier": "default",
            "type": "A/B",
            "treatments": [{"name": "control", "configuration": {}, "traffic": 50}],
            "updated_by": "tester",
        }
        body.update(overrides)
        return body

    return _body
