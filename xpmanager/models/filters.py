"""Filter object handed to the experiment listing port.

The filter is plain data. The storage adapter compiles it into
parameterized SQL; nothing here builds query strings.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from xpmanager.errors import BadInputError
from xpmanager.models.experiment import (
    ExperimentField,
    ExperimentSegmentRaw,
    ExperimentStatus,
    ExperimentStatusFriendly,
    ExperimentTier,
    ExperimentType,
)
from xpmanager.models.pagination import PaginationOptions
from xpmanager.orthogonality.segments import SegmentPredicate, build_segment_predicate
from xpmanager.orthogonality.windows import TimeWindow

ALLOWED_PROJECTION_FIELDS = frozenset(
    {
        ExperimentField.ID,
        ExperimentField.NAME,
        ExperimentField.START_TIME,
        ExperimentField.END_TIME,
        ExperimentField.TIER,
        ExperimentField.TYPE,
        ExperimentField.STATUS_FRIENDLY,
        ExperimentField.UPDATED_AT,
        ExperimentField.TREATMENTS,
    }
)


class ExperimentFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ExperimentStatus | None = None
    status_friendly: tuple[ExperimentStatusFriendly, ...] = ()
    start_time: datetime | None = None
    end_time: datetime | None = None
    tier: ExperimentTier | None = None
    type: ExperimentType | None = None
    name: str | None = None
    updated_by: str | None = None
    search: str | None = None
    segment: ExperimentSegmentRaw = Field(default_factory=dict)
    include_weak_match: bool = False
    fields: tuple[ExperimentField, ...] | None = None
    pagination: PaginationOptions = Field(default_factory=PaginationOptions)
    # Reference instant for status_friendly; None means the time of the query.
    as_of: datetime | None = None

    @property
    def window(self) -> TimeWindow | None:
        """The requested time window; both bounds or neither must be given."""
        if self.start_time is not None and self.end_time is None:
            raise BadInputError("end_time parameter must be supplied as well")
        if self.end_time is not None and self.start_time is None:
            raise BadInputError("start_time parameter must be supplied as well")
        if self.start_time is None or self.end_time is None:
            return None
        return TimeWindow(self.start_time, self.end_time)

    @property
    def segment_predicate(self) -> SegmentPredicate:
        return build_segment_predicate(self.segment, self.include_weak_match)

    @property
    def paginated(self) -> bool:
        """Projected listings are unpaged unless paging is asked for explicitly."""
        return self.fields is None or self.pagination.requested

    def projected_columns(self) -> frozenset[ExperimentField] | None:
        """Columns to load for a projection, or None to load everything.

        ``status_friendly`` is derived, so it pulls in the stored columns it
        is computed from.
        """
        if not self.fields:
            return None
        unsupported = [f for f in self.fields if f not in ALLOWED_PROJECTION_FIELDS]
        if unsupported:
            raise BadInputError(
                f"field {unsupported[0]} is not supported, fields should be one of: "
                + ", ".join(sorted(ALLOWED_PROJECTION_FIELDS))
            )
        columns = set(self.fields)
        if ExperimentField.STATUS_FRIENDLY in columns:
            columns.discard(ExperimentField.STATUS_FRIENDLY)
            columns |= {
                ExperimentField.STATUS,
                ExperimentField.START_TIME,
                ExperimentField.END_TIME,
            }
        return frozenset(columns)

    def pinned(self) -> ExperimentFilter:
        """Same filter with ``as_of`` fixed, so every page sees one reference instant."""
        if self.as_of is not None:
            return self
        return self.model_copy(update={"as_of": datetime.now(UTC)})

    def for_page(self, page: int) -> ExperimentFilter:
        """Same filter, pointed at another page of the same page size."""
        return self.model_copy(
            update={
                "pagination": PaginationOptions(
                    page=page, page_size=self.pagination.page_size
                )
            }
        )
