"""Initial catalog sync schema: catalog, cursors, activity and work queue."""

from __future__ import annotations

from datetime import UTC, datetime

import sqlalchemy as sa

from alembic import op

revision = "20261010_0001"
down_revision = None
branch_labels = None
depends_on = None

_SEED_STREAMS = (
    ("catalog_seed", "offset"),
    ("recent_chapters", "time"),
    ("activity_chapter_feed", "time"),
)


def upgrade() -> None:
    op.create_table(
        "catalog_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("title_english", sa.String(), nullable=True),
        sa.Column("title_native", sa.String(), nullable=True),
        sa.Column("title_preferred", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("publication_year", sa.Integer(), nullable=True),
        sa.Column("genres_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("cover_image_url", sa.String(), nullable=True),
        sa.Column("snapshot_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source", "external_id", name="uq_catalog_entries_source_external"),
    )
    op.create_index("ix_catalog_entries_slug", "catalog_entries", ["slug"], unique=True)
    op.create_index("ix_catalog_entries_source", "catalog_entries", ["source"], unique=False)
    op.create_index(
        "ix_catalog_entries_external_id",
        "catalog_entries",
        ["external_id"],
        unique=False,
    )

    op.create_table(
        "art_jobs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("catalog_entry_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["catalog_entry_id"],
            ["catalog_entries.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("catalog_entry_id", name="uq_art_jobs_catalog_entry"),
    )
    op.create_index("ix_art_jobs_status", "art_jobs", ["status"], unique=False)

    cursors = op.create_table(
        "crawl_cursors",
        sa.Column("stream_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("cursor_offset", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cursor_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cursor_last_id", sa.String(), nullable=True),
        sa.Column("page_size", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("total", sa.Integer(), nullable=True),
        sa.Column("processed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("stream_id"),
    )

    op.create_table(
        "activity_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("external_item_id", sa.String(), nullable=False),
        sa.Column("external_parent_id", sa.String(), nullable=False),
        sa.Column("local_parent_id", sa.Integer(), nullable=True),
        sa.Column("chapter", sa.String(), nullable=True),
        sa.Column("volume", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("translated_language", sa.String(), nullable=True),
        sa.Column("group_id", sa.String(), nullable=True),
        sa.Column("group_name", sa.String(), nullable=True),
        sa.Column("remote_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("remote_readable_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("remote_published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw_json", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_activity_records_external_item_id",
        "activity_records",
        ["external_item_id"],
        unique=True,
    )
    op.create_index(
        "ix_activity_records_external_parent_id",
        "activity_records",
        ["external_parent_id"],
        unique=False,
    )
    op.create_index(
        "ix_activity_records_local_parent_id",
        "activity_records",
        ["local_parent_id"],
        unique=False,
    )
    op.create_index(
        "ix_activity_records_remote_updated_at",
        "activity_records",
        ["remote_updated_at"],
        unique=False,
    )
    op.create_index(
        "ix_activity_records_updated_at",
        "activity_records",
        ["updated_at"],
        unique=False,
    )

    op.create_table(
        "queue_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lock_token", sa.String(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'done', 'error')",
            name="ck_queue_items_status",
        ),
        sa.CheckConstraint(
            "(status = 'processing' AND locked_until IS NOT NULL AND lock_token IS NOT NULL) "
            "OR (status != 'processing' AND locked_until IS NULL AND lock_token IS NULL)",
            name="ck_queue_items_lease_matches_status",
        ),
    )
    op.create_index("ix_queue_items_external_id", "queue_items", ["external_id"], unique=True)
    op.create_index("ix_queue_items_status", "queue_items", ["status"], unique=False)
    op.create_index(
        "idx_queue_items_status_next_run",
        "queue_items",
        ["status", "next_run_at"],
        unique=False,
    )

    now = datetime.now(tz=UTC).replace(tzinfo=None)
    op.bulk_insert(
        cursors,
        [
            {
                "stream_id": stream_id,
                "kind": kind,
                "cursor_offset": 0,
                "page_size": 100,
                "processed_count": 0,
                "created_at": now,
                "updated_at": now,
            }
            for stream_id, kind in _SEED_STREAMS
        ],
    )


def downgrade() -> None:
    op.drop_index("idx_queue_items_status_next_run", table_name="queue_items")
    op.drop_index("ix_queue_items_status", table_name="queue_items")
    op.drop_index("ix_queue_items_external_id", table_name="queue_items")
    op.drop_table("queue_items")
    op.drop_index("ix_activity_records_updated_at", table_name="activity_records")
    op.drop_index("ix_activity_records_remote_updated_at", table_name="activity_records")
    op.drop_index("ix_activity_records_local_parent_id", table_name="activity_records")
    op.drop_index("ix_activity_records_external_parent_id", table_name="activity_records")
    op.drop_index("ix_activity_records_external_item_id", table_name="activity_records")
    op.drop_table("activity_records")
    op.drop_table("crawl_cursors")
    op.drop_index("ix_art_jobs_status", table_name="art_jobs")
    op.drop_table("art_jobs")
    op.drop_index("ix_catalog_entries_external_id", table_name="catalog_entries")
    op.drop_index("ix_catalog_entries_source", table_name="catalog_entries")
    op.drop_index("ix_catalog_entries_slug", table_name="catalog_entries")
    op.drop_table("catalog_entries")
