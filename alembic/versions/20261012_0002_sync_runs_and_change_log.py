"""Add sync run ledger and catalog change log."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261012_0002"
down_revision = "20261010_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "sync_runs",
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("step", sa.String(), nullable=False),
        sa.Column("stream_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("summary_json", sa.Text(), nullable=True),
        sa.Column("error_summary", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("run_id"),
    )
    op.create_index("ix_sync_runs_status", "sync_runs", ["status"], unique=False)
    op.create_index(
        "idx_sync_runs_step_started",
        "sync_runs",
        ["step", "started_at"],
        unique=False,
    )

    op.create_table(
        "catalog_change_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("catalog_entry_id", sa.Integer(), nullable=False),
        sa.Column("remote_updated_at", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("changed_fields_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["catalog_entry_id"],
            ["catalog_entries.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_catalog_change_log_source_external",
        "catalog_change_log",
        ["source", "external_id"],
        unique=False,
    )
    op.create_index(
        "ix_catalog_change_log_catalog_entry_id",
        "catalog_change_log",
        ["catalog_entry_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_catalog_change_log_catalog_entry_id", table_name="catalog_change_log")
    op.drop_index("idx_catalog_change_log_source_external", table_name="catalog_change_log")
    op.drop_table("catalog_change_log")
    op.drop_index("idx_sync_runs_step_started", table_name="sync_runs")
    op.drop_index("ix_sync_runs_status", table_name="sync_runs")
    op.drop_table("sync_runs")
