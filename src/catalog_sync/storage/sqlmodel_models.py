"""SQLModel ORM tables for the catalog synchronization pipeline."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class CatalogEntry(SQLModel, table=True):
    __tablename__ = "catalog_entries"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_catalog_entries_source_external"),
    )

    id: int | None = Field(default=None, primary_key=True)
    slug: str = Field(unique=True, index=True)
    source: str = Field(index=True)
    external_id: str = Field(index=True)
    title: str
    title_english: str | None = None
    title_native: str | None = None
    title_preferred: str | None = None
    description: str | None = Field(default=None, sa_column=Column(Text))
    status: str | None = None
    publication_year: int | None = None
    genres_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    cover_image_url: str | None = None
    snapshot_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ArtJob(SQLModel, table=True):
    __tablename__ = "art_jobs"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    catalog_entry_id: int = Field(
        sa_column=Column(
            ForeignKey("catalog_entries.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
    )
    status: str = Field(index=True)
    attempts: int = 0
    last_error: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class CatalogChangeLog(SQLModel, table=True):
    __tablename__ = "catalog_change_log"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_catalog_change_log_source_external", "source", "external_id"),
    )

    id: int | None = Field(default=None, primary_key=True)
    source: str
    external_id: str
    catalog_entry_id: int = Field(
        sa_column=Column(
            ForeignKey("catalog_entries.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    remote_updated_at: str | None = None
    action: str
    changed_fields_json: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class CrawlCursor(SQLModel, table=True):
    __tablename__ = "crawl_cursors"  # type: ignore[bad-override]

    stream_id: str = Field(primary_key=True)
    kind: str
    cursor_offset: int = 0
    cursor_timestamp: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    cursor_last_id: str | None = None
    page_size: int = 100
    total: int | None = None
    processed_count: int = 0
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ActivityRecord(SQLModel, table=True):
    __tablename__ = "activity_records"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    external_item_id: str = Field(unique=True, index=True)
    external_parent_id: str = Field(index=True)
    local_parent_id: int | None = Field(default=None, index=True)
    chapter: str | None = None
    volume: str | None = None
    title: str | None = None
    translated_language: str | None = None
    group_id: str | None = None
    group_name: str | None = None
    remote_updated_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True, index=True),
    )
    remote_readable_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    remote_published_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    raw_json: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


class QueueItem(SQLModel, table=True):
    __tablename__ = "queue_items"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_queue_items_status_next_run", "status", "next_run_at"),)

    id: int | None = Field(default=None, primary_key=True)
    external_id: str = Field(unique=True, index=True)
    status: str = Field(index=True)
    last_seen_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    next_run_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    locked_until: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    lock_token: str | None = None
    last_error: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class SyncRun(SQLModel, table=True):
    __tablename__ = "sync_runs"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_sync_runs_step_started", "step", "started_at"),)

    run_id: str = Field(primary_key=True)
    step: str
    stream_id: str | None = None
    status: str = Field(index=True)
    started_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    summary_json: str | None = Field(default=None, sa_column=Column(Text))
    error_summary: str | None = Field(default=None, sa_column=Column(Text))
