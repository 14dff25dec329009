"""FastAPI dependency injection."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from xpmanager.db import Database
from xpmanager.models.project import ProjectSettings
from xpmanager.services import ExperimentService, ProjectSettingsService


def _get_db(request: Request) -> Database:
    """Get the database instance from app state."""
    return request.app.state.db  # type: ignore[no-any-return]


def _get_experiment_service(request: Request) -> ExperimentService:
    return request.app.state.experiment_service  # type: ignore[no-any-return]


def _get_project_service(request: Request) -> ProjectSettingsService:
    return request.app.state.project_service  # type: ignore[no-any-return]


def _get_project_settings(
    project_id: int,
    projects: Annotated[ProjectSettingsService, Depends(_get_project_service)],
) -> ProjectSettings:
    """Resolve the ``project_id`` path parameter to that project's settings."""
    return projects.get_settings(project_id)


DbDep = Annotated[Database, Depends(_get_db)]
ExperimentServiceDep = Annotated[ExperimentService, Depends(_get_experiment_service)]
ProjectServiceDep = Annotated[ProjectSettingsService, Depends(_get_project_service)]
ProjectSettingsDep = Annotated[ProjectSettings, Depends(_get_project_settings)]
