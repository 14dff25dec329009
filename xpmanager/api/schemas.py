"""API request/response schemas (separate from domain models)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from xpmanager.models.experiment import (
    Experiment,
    ExperimentField,
    ExperimentSegmentRaw,
    Treatment,
)
from xpmanager.models.pagination import Paging
from xpmanager.models.project import ProjectSettings, SegmenterConfig

# --- Responses ---


class ExperimentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    name: str
    description: str | None
    tier: str
    type: str
    interval: int | None
    status: str
    status_friendly: str
    start_time: datetime
    end_time: datetime
    segment: ExperimentSegmentRaw
    treatments: list[Treatment]
    version: int
    updated_by: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_experiment(cls, exp: Experiment) -> ExperimentResponse:
        assert exp.id is not None
        return cls(
            **exp.model_dump(exclude={"tier", "type", "status"}),
            tier=exp.tier.value,
            type=exp.type.value,
            status=exp.status.value,
            status_friendly=exp.status_friendly().value,
        )


class ExperimentListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: list[dict[str, Any]]
    paging: Paging | None = None


class ExperimentHistoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: list[ExperimentResponse]


class ProjectSettingsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_id: int
    segmenters: list[SegmenterConfig]
    treatment_schema: dict[str, Any] | None
    validation_url: str | None
    updated_by: str

    @classmethod
    def from_settings(cls, settings: ProjectSettings) -> ProjectSettingsResponse:
        return cls(**settings.model_dump())


class ProjectValidationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_id: int
    experiments_checked: int
    valid: bool = True


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    version: str
    db_connected: bool
    checks: dict[str, bool] = Field(default_factory=dict)


def project_experiment(
    exp: Experiment, fields: tuple[ExperimentField, ...] | None
) -> dict[str, Any]:
    """Render *exp* for a listing, keeping only *fields* when a projection is requested."""
    full = ExperimentResponse.from_experiment(exp).model_dump(mode="json")
    if not fields:
        return full
    return {f.value: full[f.value] for f in fields}
