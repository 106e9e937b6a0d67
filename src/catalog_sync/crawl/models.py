"""Domain models for persisted crawl cursors and crawl steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CursorKind(str, Enum):
    """Pagination style of a crawl stream."""

    OFFSET = "offset"
    TIME = "time"


@dataclass(slots=True)
class CursorView:
    """Snapshot of one crawl stream position."""

    stream_id: str
    kind: CursorKind
    cursor_offset: int
    cursor_timestamp: datetime | None
    cursor_last_id: str | None
    page_size: int
    total: int | None
    processed_count: int
    updated_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "stream_id": self.stream_id,
            "kind": self.kind.value,
            "cursor_offset": self.cursor_offset,
            "cursor_timestamp": (
                self.cursor_timestamp.isoformat() if self.cursor_timestamp is not None else None
            ),
            "cursor_last_id": self.cursor_last_id,
            "page_size": self.page_size,
            "total": self.total,
            "processed_count": self.processed_count,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class CrawlItemError:
    """Per-item ingest failure captured during a crawl step."""

    external_id: str | None
    error: str


@dataclass(slots=True)
class CrawlStepResult:
    """Outcome of one crawl step over a single remote page."""

    stream_id: str
    offset: int
    page_limit: int
    total: int | None
    fetched: int
    next_offset: int
    wrapped: bool
    processed: list[dict[str, Any]] = field(default_factory=list)
    errors: list[CrawlItemError] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "stream_id": self.stream_id,
            "page": {
                "offset": self.offset,
                "limit": self.page_limit,
                "total": self.total,
                "fetched": self.fetched,
            },
            "processed_count": len(self.processed),
            "processed": list(self.processed),
            "errors": [{"id": err.external_id, "error": err.error} for err in self.errors],
            "next_offset": self.next_offset,
            "wrapped": self.wrapped,
        }
