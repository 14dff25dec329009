"""Write request bodies for experiments and project settings."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from xpmanager.models.experiment import (
    ExperimentSegmentRaw,
    ExperimentStatus,
    ExperimentTier,
    ExperimentType,
    Treatment,
)
from xpmanager.models.project import SegmenterConfig


class _ExperimentBody(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    description: str | None = None
    start_time: datetime
    end_time: datetime
    interval: int | None = Field(default=None, ge=1)
    segment: ExperimentSegmentRaw = Field(default_factory=dict)
    status: ExperimentStatus
    treatments: list[Treatment] = Field(default_factory=list)
    tier: ExperimentTier
    type: ExperimentType
    updated_by: str = ""

    @field_validator("treatments")
    @classmethod
    def _unique_treatment_names(cls, treatments: list[Treatment]) -> list[Treatment]:
        seen: set[str] = set()
        for treatment in treatments:
            if not treatment.name.strip():
                raise ValueError("treatment name must not be blank")
            if treatment.name in seen:
                raise ValueError(f"duplicate treatment name: {treatment.name}")
            seen.add(treatment.name)
        return treatments

    @model_validator(mode="after")
    def _end_after_start(self) -> _ExperimentBody:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class CreateExperimentRequest(_ExperimentBody):
    name: str

    @field_validator("name")
    @classmethod
    def _not_blank(cls, name: str) -> str:
        if not name.strip():
            raise ValueError("name must not be blank")
        return name


class UpdateExperimentRequest(_ExperimentBody):
    pass


class ProjectSettingsRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    segmenters: list[SegmenterConfig] = Field(default_factory=list)
    treatment_schema: dict[str, Any] | None = None
    validation_url: str | None = None
    updated_by: str = ""

    @field_validator("segmenters")
    @classmethod
    def _unique_segmenters(cls, segmenters: list[SegmenterConfig]) -> list[SegmenterConfig]:
        names = [s.name for s in segmenters]
        if len(set(names)) != len(names):
            raise ValueError("segmenter names must be unique")
        return segmenters
