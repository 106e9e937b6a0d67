from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure

from catalog_sync.storage.database import SyncDatabase
from catalog_sync.workqueue.health import HealthReporter
from catalog_sync.workqueue.models import Failure, Success
from catalog_sync.workqueue.repository import WorkQueueRepository

pytestmark = [
    allure.epic("Catalog Sync"),
    allure.feature("Health Reporter"),
]

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


def test_empty_queue_report_has_zero_counts(database: SyncDatabase) -> None:
    report = HealthReporter(WorkQueueRepository(database.engine)).report(10, 30, now=T0)

    assert report.counts == {"pending": 0, "processing": 0, "done": 0, "error": 0}
    assert report.total == 0
    assert report.backlog == 0
    assert report.stuck_processing == 0
    assert report.recent_errors == []


def test_report_counts_backlog_stuck_errors_and_samples(database: SyncDatabase) -> None:
    queue = WorkQueueRepository(database.engine)
    queue.enqueue_many(["md-done", "md-error", "md-stuck", "md-abandoned"], T0)
    claimed = {item.external_id: item for item in queue.claim_batch(4, 60, now=T0)}
    queue.resolve(claimed["md-done"].id, claimed["md-done"].lock_token or "", Success(), now=T0)
    queue.resolve(
        claimed["md-error"].id,
        claimed["md-error"].lock_token or "",
        Failure("HTTP 500"),
        now=T0,
    )
    queue.enqueue_or_touch("md-pending", T0)
    reporter = HealthReporter(queue)

    report = reporter.report(10, 30, now=T0 + timedelta(seconds=61))

    assert report.counts == {"pending": 1, "processing": 2, "done": 1, "error": 1}
    assert report.total == 5
    assert report.backlog == 4
    assert report.stuck_processing == 2
    assert {item.external_id for item in report.stuck_sample} == {"md-stuck", "md-abandoned"}
    assert report.error_count == 1
    assert [item.last_error for item in report.recent_errors] == ["HTTP 500"]
    assert [item.external_id for item in report.recent_done] == ["md-done"]

    payload = report.as_dict()
    assert payload["stuck_minutes"] == 30
    assert payload["generated_at"] == (T0 + timedelta(seconds=61)).isoformat()


def test_live_lease_is_not_stuck(database: SyncDatabase) -> None:
    queue = WorkQueueRepository(database.engine)
    queue.enqueue_or_touch("md-1", T0)
    queue.claim_batch(1, 600, now=T0)

    report = HealthReporter(queue).report(10, 30, now=T0 + timedelta(seconds=30))

    assert report.counts["processing"] == 1
    assert report.stuck_processing == 0
    assert report.stuck_sample == []


def test_old_pending_sample_uses_staleness_threshold(database: SyncDatabase) -> None:
    queue = WorkQueueRepository(database.engine)
    queue.enqueue_or_touch("md-1", T0)

    just_now = HealthReporter(queue).report(10, 30)
    much_later = HealthReporter(queue).report(10, 30, now=datetime.now(tz=UTC) + timedelta(hours=1))

    assert just_now.old_pending == []
    assert [item.external_id for item in much_later.old_pending] == ["md-1"]
