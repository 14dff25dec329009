"""SQLAlchemy ORM models mapping to the xpmanager database tables."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_db_time(value: datetime) -> str:
    """Fixed-width UTC text, so string comparison in SQL is chronological."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(TIME_FORMAT)


def from_db_time(value: str) -> datetime:
    return datetime.strptime(value, TIME_FORMAT).replace(tzinfo=UTC)


def _utcnow_str() -> str:
    return to_db_time(datetime.now(UTC))


class Base(DeclarativeBase):
    pass


class ProjectRow(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    segmenters_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    treatment_schema_json: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    validation_url: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    updated_by: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)


class ExperimentRow(Base):
    __tablename__ = "experiments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey("projects.id"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    tier: Mapped[str] = mapped_column(Text, nullable=False, default="default")
    type: Mapped[str] = mapped_column(Text, nullable=False, default="A/B")
    interval: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="inactive")
    start_time: Mapped[str] = mapped_column(Text, nullable=False)
    end_time: Mapped[str] = mapped_column(Text, nullable=False)
    segment_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    treatments_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_by: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Timestamps
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_experiments_project_name"),
        CheckConstraint("tier IN ('default', 'override')", name="ck_experiments_tier"),
        CheckConstraint("type IN ('A/B', 'Switchback')", name="ck_experiments_type"),
        CheckConstraint("status IN ('active', 'inactive')", name="ck_experiments_status"),
        Index("idx_experiments_project_tier_status", "project_id", "tier", "status"),
    )


class ExperimentSegmentRow(Base):
    """One (segmenter, value) pair of an experiment's segment, for predicate lookups."""

    __tablename__ = "experiment_segments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("experiments.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("idx_experiment_segments_lookup", "experiment_id", "name", "value"),)


class ExperimentHistoryRow(Base):
    __tablename__ = "experiment_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("experiments.id"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        UniqueConstraint("experiment_id", "version", name="uq_experiment_history_version"),
        Index("idx_experiment_history_experiment", "experiment_id"),
    )
