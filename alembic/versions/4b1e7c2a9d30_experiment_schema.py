"""experiment schema

Revision ID: 4b1e7c2a9d30
Revises:
Create Date: 2026-10-17 09:12:41.118204

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4b1e7c2a9d30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create projects, experiments, segment values and history tables."""
    op.create_table(
        "projects",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("segmenters_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("treatment_schema_json", sa.Text, nullable=True),
        sa.Column("validation_url", sa.Text, nullable=True),
        sa.Column("updated_by", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
    )

    op.create_table(
        "experiments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("project_id", sa.Integer, sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("tier", sa.Text, nullable=False, server_default="default"),
        sa.Column("type", sa.Text, nullable=False, server_default="A/B"),
        sa.Column("interval", sa.Integer, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="inactive"),
        sa.Column("start_time", sa.Text, nullable=False),
        sa.Column("end_time", sa.Text, nullable=False),
        sa.Column("segment_json", sa.Text, nullable=False, server_default="{}"),
        sa.Column("treatments_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("updated_by", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
        sa.UniqueConstraint("project_id", "name", name="uq_experiments_project_name"),
        sa.CheckConstraint("tier IN ('default', 'override')", name="ck_experiments_tier"),
        sa.CheckConstraint("type IN ('A/B', 'Switchback')", name="ck_experiments_type"),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="ck_experiments_status"),
    )
    op.create_index(
        "idx_experiments_project_tier_status",
        "experiments",
        ["project_id", "tier", "status"],
    )

    op.create_table(
        "experiment_segments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "experiment_id",
            sa.Integer,
            sa.ForeignKey("experiments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("value", sa.Text, nullable=False),
    )
    op.create_index(
        "idx_experiment_segments_lookup",
        "experiment_segments",
        ["experiment_id", "name", "value"],
    )

    op.create_table(
        "experiment_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("experiment_id", sa.Integer, sa.ForeignKey("experiments.id"), nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("snapshot_json", sa.Text, nullable=False),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.UniqueConstraint("experiment_id", "version", name="uq_experiment_history_version"),
    )
    op.create_index(
        "idx_experiment_history_experiment", "experiment_history", ["experiment_id"]
    )


def downgrade() -> None:
    """Drop all xpmanager tables."""
    op.drop_index("idx_experiment_history_experiment", table_name="experiment_history")
    op.drop_table("experiment_history")
    op.drop_index("idx_experiment_segments_lookup", table_name="experiment_segments")
    op.drop_table("experiment_segments")
    op.drop_index("idx_experiments_project_tier_status", table_name="experiments")
    op.drop_table("experiments")
    op.drop_table("projects")
