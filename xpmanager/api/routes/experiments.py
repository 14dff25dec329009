"""Experiment endpoints, scoped to a project."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, status

from xpmanager.api.deps import ExperimentServiceDep, ProjectSettingsDep
from xpmanager.api.schemas import (
    ExperimentHistoryResponse,
    ExperimentListResponse,
    ExperimentResponse,
    ProjectValidationResponse,
    project_experiment,
)
from xpmanager.errors import BadInputError
from xpmanager.models.experiment import (
    ExperimentField,
    ExperimentSegmentRaw,
    ExperimentStatus,
    ExperimentStatusFriendly,
    ExperimentTier,
    ExperimentType,
)
from xpmanager.models.filters import ExperimentFilter
from xpmanager.models.pagination import PaginationOptions
from xpmanager.models.requests import CreateExperimentRequest, UpdateExperimentRequest

router = APIRouter(prefix="/projects/{project_id}/experiments", tags=["experiments"])


def _parse_segment(pairs: list[str] | None) -> ExperimentSegmentRaw:
    """Parse repeated ``segment=name:value`` query parameters."""
    segment: ExperimentSegmentRaw = {}
    for pair in pairs or []:
        name, sep, value = pair.partition(":")
        if not sep or not name:
            raise BadInputError(f"segment filter {pair!r} must look like name:value")
        segment.setdefault(name, []).append(value)
    return segment


@router.get("", response_model=ExperimentListResponse)
def list_experiments(
    settings: ProjectSettingsDep,
    service: ExperimentServiceDep,
    page: int | None = None,
    page_size: int | None = None,
    status_: Annotated[ExperimentStatus | None, Query(alias="status")] = None,
    status_friendly: Annotated[list[ExperimentStatusFriendly] | None, Query()] = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    tier: ExperimentTier | None = None,
    type_: Annotated[ExperimentType | None, Query(alias="type")] = None,
    name: str | None = None,
    updated_by: str | None = None,
    search: str | None = None,
    segment: Annotated[list[str] | None, Query()] = None,
    include_weak_match: bool = False,
    fields: Annotated[list[ExperimentField] | None, Query()] = None,
) -> ExperimentListResponse:
    filters = ExperimentFilter(
        status=status_,
        status_friendly=tuple(status_friendly or ()),
        start_time=start_time,
        end_time=end_time,
        tier=tier,
        type=type_,
        name=name,
        updated_by=updated_by,
        search=search,
        segment=_parse_segment(segment),
        include_weak_match=include_weak_match,
        fields=tuple(fields) if fields else None,
        pagination=PaginationOptions(page=page, page_size=page_size),
    )
    experiments, paging = service.list_experiments(settings, filters)
    return ExperimentListResponse(
        data=[project_experiment(e, filters.fields) for e in experiments],
        paging=paging,
    )


@router.post("/validate", response_model=ProjectValidationResponse)
def validate_project_experiments(
    settings: ProjectSettingsDep,
    service: ExperimentServiceDep,
) -> ProjectValidationResponse:
    checked = service.validate_project(settings)
    return ProjectValidationResponse(project_id=settings.project_id, experiments_checked=checked)


@router.get("/{experiment_id}", response_model=ExperimentResponse)
def get_experiment(
    experiment_id: int,
    settings: ProjectSettingsDep,
    service: ExperimentServiceDep,
) -> ExperimentResponse:
    return ExperimentResponse.from_experiment(service.get_experiment(settings, experiment_id))


@router.get("/{experiment_id}/history", response_model=ExperimentHistoryResponse)
def get_experiment_history(
    experiment_id: int,
    settings: ProjectSettingsDep,
    service: ExperimentServiceDep,
) -> ExperimentHistoryResponse:
    history = service.list_experiment_history(settings, experiment_id)
    return ExperimentHistoryResponse(
        data=[ExperimentResponse.from_experiment(e) for e in history]
    )


@router.post("", response_model=ExperimentResponse, status_code=status.HTTP_201_CREATED)
def create_experiment(
    body: CreateExperimentRequest,
    settings: ProjectSettingsDep,
    service: ExperimentServiceDep,
) -> ExperimentResponse:
    created = service.create_experiment(settings, body)
    return ExperimentResponse.from_experiment(created)


@router.put("/{experiment_id}", response_model=ExperimentResponse)
def update_experiment(
    experiment_id: int,
    body: UpdateExperimentRequest,
    settings: ProjectSettingsDep,
    service: ExperimentServiceDep,
) -> ExperimentResponse:
    updated = service.update_experiment(settings, experiment_id, body)
    return ExperimentResponse.from_experiment(updated)


@router.put("/{experiment_id}/enable", response_model=ExperimentResponse)
def enable_experiment(
    experiment_id: int,
    settings: ProjectSettingsDep,
    service: ExperimentServiceDep,
) -> ExperimentResponse:
    return ExperimentResponse.from_experiment(service.enable_experiment(settings, experiment_id))


@router.put("/{experiment_id}/disable", response_model=ExperimentResponse)
def disable_experiment(
    experiment_id: int,
    settings: ProjectSettingsDep,
    service: ExperimentServiceDep,
) -> ExperimentResponse:
    return ExperimentResponse.from_experiment(service.disable_experiment(settings, experiment_id))
