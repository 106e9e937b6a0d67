"""Domain models for the lease-based work queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class QueueItemStatus(str, Enum):
    """Queue item states; there is no terminal state."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


@dataclass(slots=True)
class QueueItemView:
    """Snapshot of one queue row, including the lease when claimed."""

    id: int
    external_id: str
    status: QueueItemStatus
    last_seen_at: datetime
    next_run_at: datetime
    locked_until: datetime | None
    lock_token: str | None
    last_error: str | None
    updated_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "status": self.status.value,
            "last_seen_at": self.last_seen_at.isoformat(),
            "next_run_at": self.next_run_at.isoformat(),
            "locked_until": self.locked_until.isoformat() if self.locked_until else None,
            "last_error": self.last_error,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class Success:
    """Resolve outcome: the item was processed."""


@dataclass(slots=True, frozen=True)
class Failure:
    """Resolve outcome: processing failed with ``message``."""

    message: str


Outcome = Success | Failure


@dataclass(slots=True)
class QueueHealthReport:
    """Read-only aggregate of queue state for operators."""

    generated_at: datetime
    stuck_minutes: int
    counts: dict[str, int]
    total: int
    backlog: int
    stuck_processing: int
    stuck_sample: list[QueueItemView] = field(default_factory=list)
    error_count: int = 0
    recent_errors: list[QueueItemView] = field(default_factory=list)
    recent_done: list[QueueItemView] = field(default_factory=list)
    old_pending: list[QueueItemView] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "stuck_minutes": self.stuck_minutes,
            "counts": dict(self.counts),
            "total": self.total,
            "backlog": self.backlog,
            "stuck_processing": self.stuck_processing,
            "stuck_sample": [item.as_dict() for item in self.stuck_sample],
            "error_count": self.error_count,
            "recent_errors": [item.as_dict() for item in self.recent_errors],
            "recent_done": [item.as_dict() for item in self.recent_done],
            "old_pending": [item.as_dict() for item in self.old_pending],
        }
