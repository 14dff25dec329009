"""Segment match predicates used to narrow orthogonality candidates.

A predicate is a disjunction of per-segmenter clauses: a stored segment
matches when *any* clause matches. The result is deliberately
over-inclusive; exact audience intersection is decided afterwards by the
segmenter service.

Weak matching treats a stored segment that omits a segmenter, or holds
an empty list for it, as targeting every value of that segmenter.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from xpmanager.models.experiment import Experiment


def format_segment_value(value: object) -> str:
    """Canonical string form of a segment value, as held in storage."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class SegmentClause:
    name: str
    values: frozenset[str]
    include_weak_match: bool = False

    def matches(self, segment: Mapping[str, Sequence[object]]) -> bool:
        stored = segment.get(self.name)
        if not stored:
            # Absent and [] are both "untargeted" on this dimension.
            return self.include_weak_match
        return any(format_segment_value(v) in self.values for v in stored)


@dataclass(frozen=True)
class SegmentPredicate:
    clauses: tuple[SegmentClause, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.clauses

    def matches(self, segment: Mapping[str, Sequence[object]]) -> bool:
        if self.is_empty:
            return True
        return any(clause.matches(segment) for clause in self.clauses)

    def filter(self, experiments: Iterable[Experiment]) -> list[Experiment]:
        return [exp for exp in experiments if self.matches(exp.segment)]


def build_segment_predicate(
    segment: Mapping[str, Sequence[object]] | None,
    include_weak_match: bool = False,
) -> SegmentPredicate:
    """Build a predicate matching stored segments that share a value with *segment*.

    Segmenters queried with no values contribute no clause.
    """
    if not segment:
        return SegmentPredicate()
    clauses = tuple(
        SegmentClause(
            name=name,
            values=frozenset(format_segment_value(v) for v in values),
            include_weak_match=include_weak_match,
        )
        for name, values in sorted(segment.items())
        if values
    )
    return SegmentPredicate(clauses)
