"""Database package: engine, ORM models and CRUD facade."""

from xpmanager.db.engine import create_db_engine, create_session_factory
from xpmanager.db.facade import Database
from xpmanager.db.orm import (
    Base,
    ExperimentHistoryRow,
    ExperimentRow,
    ExperimentSegmentRow,
    ProjectRow,
)

__all__ = [
    "Base",
    "Database",
    "ExperimentHistoryRow",
    "ExperimentRow",
    "ExperimentSegmentRow",
    "ProjectRow",
    "create_db_engine",
    "create_session_factory",
]
