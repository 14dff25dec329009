"""Project settings endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from xpmanager.api.deps import ProjectServiceDep
from xpmanager.api.schemas import ProjectSettingsResponse
from xpmanager.models.requests import ProjectSettingsRequest

router = APIRouter(prefix="/projects/{project_id}/settings", tags=["projects"])


@router.get("", response_model=ProjectSettingsResponse)
def get_project_settings(
    project_id: int,
    projects: ProjectServiceDep,
) -> ProjectSettingsResponse:
    return ProjectSettingsResponse.from_settings(projects.get_settings(project_id))


@router.post("", response_model=ProjectSettingsResponse, status_code=status.HTTP_201_CREATED)
def create_project_settings(
    project_id: int,
    body: ProjectSettingsRequest,
    projects: ProjectServiceDep,
) -> ProjectSettingsResponse:
    return ProjectSettingsResponse.from_settings(projects.create_settings(project_id, body))


@router.put("", response_model=ProjectSettingsResponse)
def update_project_settings(
    project_id: int,
    body: ProjectSettingsRequest,
    projects: ProjectServiceDep,
) -> ProjectSettingsResponse:
    return ProjectSettingsResponse.from_settings(projects.update_settings(project_id, body))
