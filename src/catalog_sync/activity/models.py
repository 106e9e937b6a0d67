"""Domain models for the remote activity feed mirror."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True, frozen=True, order=True)
class ActivityCursor:
    """Position in a newest-first feed: update time first, item id as tiebreak."""

    timestamp: datetime
    last_id: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {"updated_at": self.timestamp.isoformat(), "last_id": self.last_id or None}


@dataclass(slots=True)
class ActivityRecordWrite:
    """Activity item mapped for upsert into the local activity table."""

    external_item_id: str
    external_parent_id: str
    local_parent_id: int | None
    chapter: str | None
    volume: str | None
    title: str | None
    translated_language: str | None
    group_id: str | None
    group_name: str | None
    remote_updated_at: datetime | None
    remote_readable_at: datetime | None
    remote_published_at: datetime | None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    def sample(self) -> dict[str, Any]:
        return {
            "item_id": self.external_item_id,
            "parent_id": self.external_parent_id,
            "local_parent_id": self.local_parent_id,
            "chapter": self.chapter,
            "volume": self.volume,
            "lang": self.translated_language,
            "group": self.group_name,
            "readable_at": _iso(self.remote_readable_at),
            "updated_at": _iso(self.remote_updated_at),
        }


@dataclass(slots=True)
class ActivityRecordView:
    """Stored activity record."""

    external_item_id: str
    external_parent_id: str
    local_parent_id: int | None
    chapter: str | None
    translated_language: str | None
    remote_updated_at: datetime | None
    updated_at: datetime


@dataclass(slots=True)
class ActivitySyncResult:
    """Outcome of one incremental scan of the activity feed."""

    stream_id: str
    forced: bool
    pages: int
    processed: int
    stored: int
    cursor_before: ActivityCursor | None
    newest_cursor: ActivityCursor | None
    cursor_advanced: bool
    parent_external_id: str | None = None
    sample: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "stream_id": self.stream_id,
            "forced": self.forced,
            "pages": self.pages,
            "processed": self.processed,
            "stored": self.stored,
            "cursor_before": self.cursor_before.as_dict() if self.cursor_before else None,
            "cursor_after": self.newest_cursor.as_dict() if self.newest_cursor else None,
            "cursor_advanced": self.cursor_advanced,
            "parent_external_id": self.parent_external_id,
            "sample": list(self.sample),
        }


@dataclass(slots=True)
class ActivityPeek:
    """Newest remote feed items next to the persisted cursor; nothing is written."""

    stream_id: str
    cursor: ActivityCursor | None
    items: list[dict[str, Any]]

    def as_dict(self) -> dict[str, Any]:
        return {
            "stream_id": self.stream_id,
            "cursor": self.cursor.as_dict() if self.cursor else None,
            "items": list(self.items),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
