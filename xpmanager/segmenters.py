"""Segmenter service: value checks, schema conversion and audience intersection."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import structlog

from xpmanager.errors import BadInputError
from xpmanager.models.project import SegmenterType
from xpmanager.orthogonality.segments import format_segment_value

if TYPE_CHECKING:
    from xpmanager.models.experiment import (
        Experiment,
        ExperimentSegment,
        ExperimentSegmentRaw,
        SegmentValue,
    )
    from xpmanager.models.project import ProjectSettings

logger = structlog.get_logger()

_BOOL_STRINGS = {"true": True, "false": False}


def _check_value(name: str, value: SegmentValue, type_: SegmenterType) -> None:
    if type_ == SegmenterType.STRING:
        ok = isinstance(value, str)
    elif type_ == SegmenterType.BOOL:
        ok = isinstance(value, bool)
    elif type_ == SegmenterType.INTEGER:
        ok = isinstance(value, int) and not isinstance(value, bool)
    else:
        ok = isinstance(value, int | float) and not isinstance(value, bool)
    if not ok:
        raise BadInputError(
            f"segmenter {name} expects {type_.value} values, got {value!r}"
        )


def _parse_value(name: str, value: str, type_: SegmenterType) -> SegmentValue:
    try:
        if type_ == SegmenterType.INTEGER:
            return int(value)
        if type_ == SegmenterType.REAL:
            return float(value)
        if type_ == SegmenterType.BOOL:
            return _BOOL_STRINGS[value]
    except (KeyError, ValueError) as exc:
        raise BadInputError(
            f"value {value!r} for segmenter {name} is not a valid {type_.value}"
        ) from exc
    return value


def _dimension_overlaps(a: Sequence[object] | None, b: Sequence[object] | None) -> bool:
    # An untargeted dimension (absent or []) admits every subject.
    if not a or not b:
        return True
    return bool({format_segment_value(v) for v in a} & {format_segment_value(v) for v in b})


class SegmenterService:
    def segmenter_names(self, settings: ProjectSettings) -> frozenset[str]:
        return settings.segmenter_names

    def validate_experiment_segment(
        self, settings: ProjectSettings, segment: ExperimentSegmentRaw
    ) -> None:
        """Type-check values of configured segmenters and reject duplicates.

        Unknown segmenter names are left to the segmenter-existence check,
        which only applies to active experiments.
        """
        types = settings.segmenter_types
        for name, values in segment.items():
            if len({format_segment_value(v) for v in values}) != len(values):
                raise BadInputError(f"segmenter {name} has duplicate values")
            type_ = types.get(name)
            if type_ is None:
                continue
            for value in values:
                _check_value(name, value, type_)

    def validate_segment_orthogonality(
        self,
        project_id: int,
        segmenters: Sequence[str],
        segment: ExperimentSegmentRaw,
        experiments: Sequence[Experiment],
    ) -> None:
        """Reject *segment* if its audience intersects that of any experiment given.

        Two segments intersect when every dimension intersects; a dimension
        neither side targets explicitly is a full match.
        """
        for exp in experiments:
            names = set(segmenters) | set(segment) | set(exp.segment)
            if all(_dimension_overlaps(segment.get(n), exp.segment.get(n)) for n in names):
                shared = sorted(
                    n for n in names if segment.get(n) and exp.segment.get(n)
                )
                detail = (
                    f"overlapping values on segmenters: {', '.join(shared)}"
                    if shared
                    else "no segmenter separates their audiences"
                )
                logger.debug(
                    "Segment orthogonality conflict",
                    project_id=project_id,
                    conflicting_experiment_id=exp.id,
                    segmenters=shared,
                )
                raise BadInputError(
                    f"Segment Orthogonality check failed against experiment ID "
                    f"{exp.id} ({exp.name}): {detail}"
                )

    def to_storage_schema(
        self, segment: ExperimentSegmentRaw, types: Mapping[str, SegmenterType]
    ) -> ExperimentSegment:
        storage: ExperimentSegment = {}
        for name, values in segment.items():
            type_ = types.get(name, SegmenterType.STRING)
            if type_ != SegmenterType.STRING:
                # Query-string filters arrive as text; read them as the segmenter's type.
                values = [_parse_value(name, v, type_) if isinstance(v, str) else v for v in values]
            if type_ == SegmenterType.REAL:
                # 1 and 1.0 must be stored identically for value matching.
                values = [
                    float(v) if isinstance(v, int) and not isinstance(v, bool) else v
                    for v in values
                ]
            storage[name] = [format_segment_value(v) for v in values]
        return storage

    def to_raw_schema(
        self, segment: ExperimentSegment, types: Mapping[str, SegmenterType]
    ) -> ExperimentSegmentRaw:
        return {
            name: [_parse_value(name, v, types.get(name, SegmenterType.STRING)) for v in values]
            for name, values in segment.items()
        }
