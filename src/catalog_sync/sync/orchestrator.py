"""Periodic bridge from detected activity to queued, lease-protected work."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from catalog_sync.activity.repository import ActivityRepository
from catalog_sync.activity.tracker import ActivityDeltaTracker
from catalog_sync.catalog.client import CatalogSource
from catalog_sync.catalog.ingest import CatalogIngestor
from catalog_sync.storage.common import utc_now
from catalog_sync.workqueue.models import Failure, Success
from catalog_sync.workqueue.repository import WorkQueueRepository

logger = logging.getLogger(__name__)


class ItemProcessor(Protocol):
    """Narrow per-item work invoked for each claimed queue row."""

    def process(self, external_id: str) -> dict[str, Any]:
        raise NotImplementedError


@dataclass(slots=True)
class ItemResult:
    queue_id: int
    external_id: str
    ok: bool
    resolved: bool
    error: str | None = None
    detail: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "queue_id": self.queue_id,
            "external_id": self.external_id,
            "ok": self.ok,
            "resolved": self.resolved,
            "error": self.error,
            "detail": self.detail,
        }


@dataclass(slots=True)
class OrchestratorRunResult:
    window: int
    batch_size: int
    lease_seconds: int
    enqueued_unique_ids: int
    claimed: int
    results: list[ItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.results if item.ok)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.results if not item.ok)

    def as_dict(self) -> dict[str, Any]:
        return {
            "window": self.window,
            "batch_size": self.batch_size,
            "lease_seconds": self.lease_seconds,
            "enqueued_unique_ids": self.enqueued_unique_ids,
            "claimed": self.claimed,
            "processed": len(self.results),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [item.as_dict() for item in self.results],
        }


class EntryDeltaSync:
    """Refresh one catalog entry and its newest activity item."""

    def __init__(
        self,
        *,
        source: CatalogSource,
        ingestor: CatalogIngestor,
        tracker: ActivityDeltaTracker,
        stream_id: str = "activity_chapter_feed",
    ) -> None:
        self.source = source
        self.ingestor = ingestor
        self.tracker = tracker
        self.stream_id = stream_id

    def process(self, external_id: str) -> dict[str, Any]:
        payload = self.source.get_entry(external_id)
        outcome = self.ingestor.ingest(payload)
        activity = self.tracker.sync(
            1,
            1,
            True,
            stream_id=self.stream_id,
            parent_external_id=external_id,
        )
        return {"entry": outcome.as_dict(), "activity": activity.as_dict()}


class SyncOrchestrator:
    """Enqueue recent activity, claim a bounded batch and process it."""

    def __init__(
        self,
        *,
        queue: WorkQueueRepository,
        activity: ActivityRepository,
        processor: ItemProcessor,
    ) -> None:
        self.queue = queue
        self.activity = activity
        self.processor = processor

    def run(self, window: int, batch_size: int, lease_seconds: int) -> OrchestratorRunResult:
        parent_ids = self.activity.list_recent_parent_ids(window)
        enqueued = self.queue.enqueue_many(parent_ids, utc_now())

        claimed = self.queue.claim_batch(batch_size, lease_seconds)
        result = OrchestratorRunResult(
            window=window,
            batch_size=batch_size,
            lease_seconds=lease_seconds,
            enqueued_unique_ids=enqueued,
            claimed=len(claimed),
        )

        for item in claimed:
            if item.lock_token is None:
                raise RuntimeError(f"Claimed queue item {item.id} has no lock token")
            try:
                detail = self.processor.process(item.external_id)
            except Exception as error:  # noqa: BLE001
                logger.exception("Queue item %s (%s) failed", item.id, item.external_id)
                message = str(error) or type(error).__name__
                resolved = self.queue.resolve(item.id, item.lock_token, Failure(message))
                result.results.append(
                    ItemResult(
                        queue_id=item.id,
                        external_id=item.external_id,
                        ok=False,
                        resolved=resolved,
                        error=message,
                    ),
                )
                continue
            resolved = self.queue.resolve(item.id, item.lock_token, Success())
            result.results.append(
                ItemResult(
                    queue_id=item.id,
                    external_id=item.external_id,
                    ok=True,
                    resolved=resolved,
                    detail=detail,
                ),
            )

        logger.info(
            "Orchestrator run enqueued=%d claimed=%d succeeded=%d failed=%d",
            enqueued,
            result.claimed,
            result.succeeded,
            result.failed,
        )
        return result
