"""Re-exports all Pydantic models."""

from xpmanager.models.experiment import (
    Experiment,
    ExperimentField,
    ExperimentHistory,
    ExperimentSegment,
    ExperimentSegmentRaw,
    ExperimentStatus,
    ExperimentStatusFriendly,
    ExperimentTier,
    ExperimentType,
    OperationType,
    Treatment,
)
from xpmanager.models.filters import ExperimentFilter
from xpmanager.models.pagination import Paging, PaginationOptions
from xpmanager.models.project import ProjectSettings, SegmenterConfig, SegmenterType

__all__ = [
    "Experiment",
    "ExperimentField",
    "ExperimentFilter",
    "ExperimentHistory",
    "ExperimentSegment",
    "ExperimentSegmentRaw",
    "ExperimentStatus",
    "ExperimentStatusFriendly",
    "ExperimentTier",
    "ExperimentType",
    "OperationType",
    "PaginationOptions",
    "Paging",
    "ProjectSettings",
    "SegmenterConfig",
    "SegmenterType",
    "Treatment",
]
