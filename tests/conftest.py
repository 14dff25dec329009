"""Shared test fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from xpmanager.config import Settings
from xpmanager.db import Database
from xpmanager.models.experiment import Experiment, ExperimentStatus, ExperimentTier
from xpmanager.models.project import ProjectSettings, SegmenterConfig, SegmenterType
from xpmanager.publisher import InMemoryPublisher
from xpmanager.segmenters import SegmenterService
from xpmanager.services import ExperimentService, ProjectSettingsService
from xpmanager.validation import ExternalValidationClient, TreatmentSchemaValidator

PROJECT_ID = 1

# Fixed reference point for windows; far enough ahead that experiments are "scheduled".
T0 = datetime(2030, 1, 1, tzinfo=UTC)


def hours(n: float) -> datetime:
    return T0 + timedelta(hours=n)


def make_experiment(
    name: str,
    start: float = 0,
    end: float = 10,
    segment: dict | None = None,
    tier: ExperimentTier = ExperimentTier.DEFAULT,
    status: ExperimentStatus = ExperimentStatus.ACTIVE,
    experiment_id: int | None = None,
    project_id: int = PROJECT_ID,
) -> Experiment:
    return Experiment(
        id=experiment_id,
        project_id=project_id,
        name=name,
        tier=tier,
        status=status,
        start_time=hours(start),
        end_time=hours(end),
        segment=segment or {},
    )


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        default_page_size=10,
        max_page_size=100,
        validation_timeout_seconds=1.0,
        publisher="none",
        log_level="DEBUG",
        log_format="console",
        _env_file=None,
    )


@pytest.fixture()
def db(tmp_path) -> Database:
    db = Database(tmp_path / "test.db")
    db.init_schema()
    yield db
    db.close()


@pytest.fixture()
def project(db: Database) -> ProjectSettings:
    return db.save_project_settings(
        ProjectSettings(
            project_id=PROJECT_ID,
            segmenters=[
                SegmenterConfig(name="country", type=SegmenterType.STRING),
                SegmenterConfig(name="days_of_week", type=SegmenterType.INTEGER),
                SegmenterConfig(name="is_member", type=SegmenterType.BOOL),
            ],
            updated_by="tester",
        )
    )


@pytest.fixture()
def publisher() -> InMemoryPublisher:
    return InMemoryPublisher()


@pytest.fixture()
def service(db: Database, publisher: InMemoryPublisher) -> ExperimentService:
    return ExperimentService(
        db=db,
        segmenters=SegmenterService(),
        schema_validator=TreatmentSchemaValidator(),
        external_validator=ExternalValidationClient(timeout=1.0),
        publisher=publisher,
    )


@pytest.fixture()
def project_service(db: Database, service: ExperimentService) -> ProjectSettingsService:
    return ProjectSettingsService(db, service)


@pytest.fixture()
def at():
    """``at(n)`` is the reference instant shifted by *n* hours."""
    return hours


@pytest.fixture()
def make_exp():
    return make_experiment
