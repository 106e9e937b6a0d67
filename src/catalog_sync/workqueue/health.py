"""Read-only health aggregation over the work queue."""

from __future__ import annotations

from datetime import datetime, timedelta

from catalog_sync.storage.common import utc_now
from catalog_sync.workqueue.models import QueueHealthReport, QueueItemStatus
from catalog_sync.workqueue.repository import WorkQueueRepository


class HealthReporter:
    def __init__(self, queue: WorkQueueRepository) -> None:
        self.queue = queue

    def report(
        self,
        sample: int,
        stale_minutes: int,
        *,
        now: datetime | None = None,
    ) -> QueueHealthReport:
        """Status histogram, backlog, stuck leases and recent samples.

        A ``processing`` row whose lease expired is counted as stuck: a live
        worker resolves before expiry, so this points at a crashed invocation.
        Pending rows untouched for ``stale_minutes`` are sampled oldest first.
        """

        now = now or utc_now()
        counts = {status.value: 0 for status in QueueItemStatus}
        counts.update(self.queue.count_by_status())
        total = sum(counts.values())
        return QueueHealthReport(
            generated_at=now,
            stuck_minutes=stale_minutes,
            counts=counts,
            total=total,
            backlog=total - counts.get(QueueItemStatus.DONE.value, 0),
            stuck_processing=self.queue.count_stuck(now),
            stuck_sample=self.queue.list_stuck(now, sample),
            error_count=counts.get(QueueItemStatus.ERROR.value, 0),
            recent_errors=self.queue.list_items(status=QueueItemStatus.ERROR, limit=sample),
            recent_done=self.queue.list_items(status=QueueItemStatus.DONE, limit=sample),
            old_pending=self.queue.list_stale_pending(
                now - timedelta(minutes=stale_minutes),
                sample,
            ),
        )
