"""Orthogonality validation engine: windows, segment predicates, retrieval, validation."""

from xpmanager.orthogonality.segments import (
    SegmentClause,
    SegmentPredicate,
    build_segment_predicate,
    format_segment_value,
)
from xpmanager.orthogonality.windows import TimeWindow, overlaps

__all__ = [
    "SegmentClause",
    "SegmentPredicate",
    "TimeWindow",
    "build_segment_predicate",
    "format_segment_value",
    "overlaps",
]
