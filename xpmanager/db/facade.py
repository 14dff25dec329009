"""SQLAlchemy-backed database connection and CRUD helpers."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import and_, delete, exists, false, func, not_, or_, select, text

from xpmanager.db.engine import create_db_engine, create_session_factory
from xpmanager.db.orm import (
    Base,
    ExperimentHistoryRow,
    ExperimentRow,
    ExperimentSegmentRow,
    ProjectRow,
    from_db_time,
    to_db_time,
)
from xpmanager.errors import BadInputError
from xpmanager.models.experiment import (
    Experiment,
    ExperimentHistory,
    ExperimentStatus,
    ExperimentStatusFriendly,
    ExperimentTier,
    ExperimentType,
    Treatment,
)
from xpmanager.models.pagination import Paging, validate_pagination
from xpmanager.models.project import ProjectSettings, SegmenterConfig

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy import ColumnElement, Engine, Select
    from sqlalchemy.orm import Session, sessionmaker

    from xpmanager.models.filters import ExperimentFilter
    from xpmanager.orthogonality.segments import SegmentClause, SegmentPredicate
    from xpmanager.orthogonality.windows import TimeWindow

logger = structlog.get_logger()


class Database:
    """SQLAlchemy-backed wrapper with CRUD helpers for projects, experiments and history.

    Experiment segments are stored in the storage schema (string values).
    """

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        default_page_size: int = 10,
        max_page_size: int = 100,
    ):
        self.db_path = str(db_path)
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self._engine: Engine = create_db_engine(self.db_path)
        self._session_factory: sessionmaker[Session] = create_session_factory(self._engine)

    @property
    def engine(self) -> Engine:
        """Expose the SQLAlchemy engine for inspection and advanced use."""
        return self._engine

    def init_schema(self) -> None:
        """Create all tables via ORM metadata."""
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    def check_connection(self) -> bool:
        """Verify the database is reachable. Returns True or raises."""
        with self._session_factory() as session:
            session.execute(text("SELECT 1"))
        return True

    # --- Projects ---

    def get_project_settings(self, project_id: int) -> ProjectSettings | None:
        with self._session_factory() as session:
            row = session.get(ProjectRow, project_id)
            if row is None:
                return None
            return self._row_to_settings(row)

    def save_project_settings(self, settings: ProjectSettings) -> ProjectSettings:
        with self._session_factory() as session:
            row = session.get(ProjectRow, settings.project_id)
            if row is None:
                row = ProjectRow(id=settings.project_id)
                session.add(row)
            row.segmenters_json = json.dumps(
                [s.model_dump(mode="json") for s in settings.segmenters]
            )
            row.treatment_schema_json = (
                json.dumps(settings.treatment_schema) if settings.treatment_schema else None
            )
            row.validation_url = settings.validation_url
            row.updated_by = settings.updated_by
            row.updated_at = _utcnow_str()
            session.commit()
            return self._row_to_settings(row)

    # --- Experiments ---

    def get_experiment(self, project_id: int, experiment_id: int) -> Experiment | None:
        with self._session_factory() as session:
            row = session.get(ExperimentRow, experiment_id)
            if row is None or row.project_id != project_id:
                return None
            return self._row_to_experiment(row)

    def create_experiment(self, experiment: Experiment) -> Experiment:
        with self._session_factory() as session:
            row = ExperimentRow(project_id=experiment.project_id, name=experiment.name)
            self._apply(row, experiment)
            session.add(row)
            session.flush()
            self._replace_segment_rows(session, row.id, experiment.segment)
            session.commit()
            logger.debug("Experiment created", experiment_id=row.id, project_id=row.project_id)
            return self._row_to_experiment(row)

    def update_experiment(
        self, experiment: Experiment, history_of: Experiment | None = None
    ) -> Experiment:
        """Write a new version of *experiment*.

        When *history_of* is given its snapshot is recorded in the same
        transaction, so either both land or neither does. The stored version
        must be the one directly preceding ``experiment.version``.
        """
        with self._session_factory() as session:
            row = session.get(ExperimentRow, experiment.id)
            if row is None or row.project_id != experiment.project_id:
                raise BadInputError(f"experiment id {experiment.id} does not exist")
            if row.version != experiment.version - 1:
                raise BadInputError(
                    f"experiment id {experiment.id} was modified concurrently "
                    f"(stored version {row.version}, writing {experiment.version})"
                )
            if history_of is not None:
                session.add(
                    ExperimentHistoryRow(
                        experiment_id=row.id,
                        version=history_of.version,
                        snapshot_json=history_of.model_dump_json(),
                    )
                )
            self._apply(row, experiment)
            row.updated_at = _utcnow_str()
            self._replace_segment_rows(session, row.id, experiment.segment)
            session.commit()
            return self._row_to_experiment(row)

    def list_experiment_history(self, experiment_id: int) -> list[ExperimentHistory]:
        with self._session_factory() as session:
            stmt = (
                select(ExperimentHistoryRow)
                .where(ExperimentHistoryRow.experiment_id == experiment_id)
                .order_by(ExperimentHistoryRow.version)
            )
            return [
                ExperimentHistory(
                    id=r.id,
                    experiment_id=r.experiment_id,
                    version=r.version,
                    snapshot=Experiment.model_validate_json(r.snapshot_json),
                    created_at=from_db_time(r.created_at),
                )
                for r in session.scalars(stmt).all()
            ]

    def list_experiments(
        self, project_id: int, filters: ExperimentFilter
    ) -> tuple[list[Experiment], Paging | None]:
        """Return experiments matching *filters*, most recently updated first.

        Paging metadata is returned whenever the filter is paginated.
        """
        stmt = self._filtered_query(project_id, filters)
        with self._session_factory() as session:
            paging: Paging | None = None
            if filters.paginated:
                validate_pagination(filters.pagination, self.max_page_size)
                page, page_size = filters.pagination.resolved(self.default_page_size)
                total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
                paging = Paging.from_count(page, page_size, total)
                if paging.page > 1 and paging.pages < paging.page:
                    raise BadInputError(
                        f"Requested page number {paging.page} exceeds total pages: {paging.pages}."
                    )
                stmt = stmt.offset((page - 1) * page_size).limit(page_size)
            rows = session.scalars(stmt).all()
            return [self._row_to_experiment(r) for r in rows], paging

    # --- Query compilation ---

    def _filtered_query(self, project_id: int, filters: ExperimentFilter) -> Select:
        stmt = (
            select(ExperimentRow)
            .where(ExperimentRow.project_id == project_id)
            .order_by(ExperimentRow.updated_at.desc(), ExperimentRow.id.desc())
        )
        if filters.status is not None:
            stmt = stmt.where(ExperimentRow.status == filters.status.value)
        if filters.status_friendly:
            now = to_db_time(filters.as_of) if filters.as_of is not None else _utcnow_str()
            stmt = stmt.where(_status_friendly_clause(filters.status_friendly, now))
        window = filters.window
        if window is not None:
            stmt = stmt.where(_window_clause(window))
        if filters.tier is not None:
            stmt = stmt.where(ExperimentRow.tier == filters.tier.value)
        if filters.type is not None:
            stmt = stmt.where(ExperimentRow.type == filters.type.value)
        if filters.name is not None:
            stmt = stmt.where(ExperimentRow.name == filters.name)
        if filters.updated_by:
            stmt = stmt.where(
                ExperimentRow.updated_by.icontains(filters.updated_by, autoescape=True)
            )
        if filters.search:
            stmt = stmt.where(
                or_(
                    ExperimentRow.name.icontains(filters.search, autoescape=True),
                    ExperimentRow.description.icontains(filters.search, autoescape=True),
                )
            )
        predicate = filters.segment_predicate
        if not predicate.is_empty:
            stmt = stmt.where(_segment_clause(predicate))
        return stmt

    # --- Helpers ---

    @staticmethod
    def _apply(row: ExperimentRow, experiment: Experiment) -> None:
        row.description = experiment.description
        row.tier = experiment.tier.value
        row.type = experiment.type.value
        row.interval = experiment.interval
        row.status = experiment.status.value
        row.start_time = to_db_time(experiment.start_time)
        row.end_time = to_db_time(experiment.end_time)
        row.segment_json = json.dumps(experiment.segment)
        row.treatments_json = json.dumps([t.model_dump(mode="json") for t in experiment.treatments])
        row.version = experiment.version
        row.updated_by = experiment.updated_by

    @staticmethod
    def _replace_segment_rows(
        session: Session, experiment_id: int, segment: dict[str, list]
    ) -> None:
        session.execute(
            delete(ExperimentSegmentRow).where(ExperimentSegmentRow.experiment_id == experiment_id)
        )
        session.add_all(
            ExperimentSegmentRow(experiment_id=experiment_id, name=name, value=str(value))
            for name, values in segment.items()
            for value in values
        )

    @staticmethod
    def _row_to_experiment(row: ExperimentRow) -> Experiment:
        return Experiment(
            id=row.id,
            project_id=row.project_id,
            name=row.name,
            description=row.description,
            tier=ExperimentTier(row.tier),
            type=ExperimentType(row.type),
            interval=row.interval,
            status=ExperimentStatus(row.status),
            start_time=from_db_time(row.start_time),
            end_time=from_db_time(row.end_time),
            segment=json.loads(row.segment_json),
            treatments=[Treatment.model_validate(t) for t in json.loads(row.treatments_json)],
            version=row.version,
            updated_by=row.updated_by,
            created_at=from_db_time(row.created_at),
            updated_at=from_db_time(row.updated_at),
        )

    @staticmethod
    def _row_to_settings(row: ProjectRow) -> ProjectSettings:
        return ProjectSettings(
            project_id=row.id,
            segmenters=[SegmenterConfig.model_validate(s) for s in json.loads(row.segmenters_json)],
            treatment_schema=(
                json.loads(row.treatment_schema_json) if row.treatment_schema_json else None
            ),
            validation_url=row.validation_url,
            updated_by=row.updated_by,
        )


def _window_clause(window: TimeWindow) -> ColumnElement[bool]:
    """Stored windows ``[start_time, end_time)`` that overlap *window*.

    Same boundary policy as ``orthogonality.windows.overlaps``.
    """
    start, end = to_db_time(window.start), to_db_time(window.end)
    if window.is_instant:
        return and_(ExperimentRow.start_time <= start, ExperimentRow.end_time >= start)
    return or_(
        and_(ExperimentRow.start_time <= start, ExperimentRow.end_time > start),
        and_(ExperimentRow.start_time < end, ExperimentRow.end_time > end),
        and_(ExperimentRow.start_time >= start, ExperimentRow.end_time <= end),
    )


def _status_friendly_clause(
    statuses: tuple[ExperimentStatusFriendly, ...], now: str
) -> ColumnElement[bool]:
    active = ExperimentRow.status == ExperimentStatus.ACTIVE.value
    clauses: dict[ExperimentStatusFriendly, ColumnElement[bool]] = {
        ExperimentStatusFriendly.DEACTIVATED: ExperimentRow.status
        == ExperimentStatus.INACTIVE.value,
        ExperimentStatusFriendly.SCHEDULED: and_(active, ExperimentRow.start_time > now),
        ExperimentStatusFriendly.COMPLETED: and_(active, ExperimentRow.end_time <= now),
        ExperimentStatusFriendly.RUNNING: and_(
            active, ExperimentRow.start_time <= now, ExperimentRow.end_time > now
        ),
    }
    return or_(false(), *(clauses[s] for s in statuses))


def _segment_clause(predicate: SegmentPredicate) -> ColumnElement[bool]:
    return or_(*(_segment_clause_for(clause) for clause in predicate.clauses))


def _segment_clause_for(clause: SegmentClause) -> ColumnElement[bool]:
    same_dimension = and_(
        ExperimentSegmentRow.experiment_id == ExperimentRow.id,
        ExperimentSegmentRow.name == clause.name,
    )
    shares_value = exists().where(
        same_dimension, ExperimentSegmentRow.value.in_(sorted(clause.values))
    )
    if not clause.include_weak_match:
        return shares_value
    # No rows for the dimension covers both an absent key and an empty list.
    return or_(shares_value, not_(exists().where(same_dimension)))


def _utcnow_str() -> str:
    return to_db_time(datetime.now(UTC))
