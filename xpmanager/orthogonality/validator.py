"""Orthogonality and segmenter-existence checks for experiments."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import structlog

from xpmanager.errors import BadInputError
from xpmanager.metrics import orthogonality_conflicts_total

if TYPE_CHECKING:
    from xpmanager.models.experiment import Experiment, ExperimentSegmentRaw, ExperimentTier
    from xpmanager.protocols import SegmenterPort

logger = structlog.get_logger()


def validate_experiment_segmenters_exist(
    experiment_name: str,
    segment: Mapping[str, object],
    segmenter_names: frozenset[str],
) -> None:
    """Every segment dimension must be a configured segmenter of the project."""
    for name in segment:
        if name not in segmenter_names:
            raise BadInputError(f"experiment {experiment_name} requires segmenter: {name}")


class OrthogonalityValidator:
    """Rejects experiments whose audience could collide with another in the same tier."""

    def __init__(self, segmenters: SegmenterPort) -> None:
        self._segmenters = segmenters

    def validate_against(
        self,
        project_id: int,
        experiment_id: int | None,
        segment: ExperimentSegmentRaw,
        tier: ExperimentTier,
        others: Sequence[Experiment],
        segmenter_names: Sequence[str],
    ) -> None:
        """One-vs-many check.

        *others* are the active experiments in the same tier whose windows
        overlap; the experiment itself is excluded when it is being updated.
        """
        candidates = [exp for exp in others if experiment_id is None or exp.id != experiment_id]
        if not candidates:
            return
        try:
            self._segmenters.validate_segment_orthogonality(
                project_id, segmenter_names, segment, candidates
            )
        except BadInputError:
            orthogonality_conflicts_total.labels(tier=tier.value).inc()
            raise

    def validate_pairwise(
        self,
        project_id: int,
        experiments: Sequence[Experiment],
        segmenter_names: Sequence[str],
    ) -> None:
        """Check every pair in *experiments* once, stopping at the first conflict.

        Experiment ``i`` is only compared with experiments after it that share
        its tier. Callers choose the set; windows are not consulted here.
        """
        for i, current in enumerate(experiments[:-1]):
            later = [exp for exp in experiments[i + 1 :] if exp.tier == current.tier]
            try:
                self.validate_against(
                    project_id,
                    current.id,
                    current.segment,
                    current.tier,
                    later,
                    segmenter_names,
                )
            except BadInputError as exc:
                logger.info(
                    "Pairwise orthogonality conflict",
                    project_id=project_id,
                    experiment_id=current.id,
                )
                raise BadInputError(
                    f"Orthogonality check for experiment ID {current.id}: {exc}"
                ) from exc

    def validate_segmenters_exist(
        self,
        experiments: Sequence[Experiment],
        segmenter_names: frozenset[str],
    ) -> None:
        for exp in experiments:
            validate_experiment_segmenters_exist(exp.name, exp.segment, segmenter_names)
