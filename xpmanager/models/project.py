"""Project-level settings threaded through every experiment operation."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SegmenterType(StrEnum):
    STRING = "string"
    INTEGER = "integer"
    REAL = "real"
    BOOL = "bool"


class SegmenterConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: SegmenterType = SegmenterType.STRING


class ProjectSettings(BaseModel):
    """Immutable configuration for one project.

    Passed explicitly as a parameter; nothing in the service layer caches it.
    """

    model_config = ConfigDict(frozen=True)

    project_id: int
    segmenters: list[SegmenterConfig] = Field(default_factory=list)
    treatment_schema: dict[str, Any] | None = None
    validation_url: str | None = None
    updated_by: str = ""

    @property
    def segmenter_names(self) -> frozenset[str]:
        return frozenset(s.name for s in self.segmenters)

    @property
    def segmenter_types(self) -> dict[str, SegmenterType]:
        return {s.name: s.type for s in self.segmenters}
