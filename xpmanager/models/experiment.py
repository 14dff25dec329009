"""Experiment model, the unit the orthogonality engine guards."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SegmentValue = str | int | float | bool

# Raw segment: segmenter name -> values as supplied by API callers.
ExperimentSegmentRaw = dict[str, list[SegmentValue]]
# Storage segment: segmenter name -> values normalised to strings.
ExperimentSegment = dict[str, list[str]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ExperimentTier(StrEnum):
    DEFAULT = "default"
    OVERRIDE = "override"


class ExperimentType(StrEnum):
    AB = "A/B"
    SWITCHBACK = "Switchback"


class ExperimentStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ExperimentStatusFriendly(StrEnum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    DEACTIVATED = "deactivated"


class ExperimentField(StrEnum):
    """Columns that may be requested through field projection."""

    ID = "id"
    NAME = "name"
    START_TIME = "start_time"
    END_TIME = "end_time"
    TIER = "tier"
    TYPE = "type"
    STATUS = "status"
    STATUS_FRIENDLY = "status_friendly"
    UPDATED_AT = "updated_at"
    TREATMENTS = "treatments"


class OperationType(StrEnum):
    CREATE = "create"
    UPDATE = "update"


class Treatment(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    configuration: dict[str, Any] = Field(default_factory=dict)
    traffic: int | None = None


class Experiment(BaseModel):
    """One experiment within a project.

    ``segment`` is held in the raw schema; the storage layer converts it to
    string values through the segmenter service on the way in and out.
    """

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    project_id: int
    name: str
    description: str | None = None
    tier: ExperimentTier = ExperimentTier.DEFAULT
    type: ExperimentType = ExperimentType.AB
    interval: int | None = None
    status: ExperimentStatus = ExperimentStatus.INACTIVE
    start_time: datetime
    end_time: datetime
    segment: ExperimentSegmentRaw = Field(default_factory=dict)
    treatments: list[Treatment] = Field(default_factory=list)
    version: int = 1
    updated_by: str = ""

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def status_friendly(self, now: datetime | None = None) -> ExperimentStatusFriendly:
        """Project the stored status and window onto a display state."""
        if self.status == ExperimentStatus.INACTIVE:
            return ExperimentStatusFriendly.DEACTIVATED
        now = now or _utcnow()
        if self.start_time > now:
            return ExperimentStatusFriendly.SCHEDULED
        # The window is [start, end): the end instant itself is already over.
        if self.end_time <= now:
            return ExperimentStatusFriendly.COMPLETED
        return ExperimentStatusFriendly.RUNNING


class ExperimentHistory(BaseModel):
    """Immutable snapshot of an experiment taken before it was changed."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    experiment_id: int
    version: int
    snapshot: Experiment
    created_at: datetime = Field(default_factory=_utcnow)
