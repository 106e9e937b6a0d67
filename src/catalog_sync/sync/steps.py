"""Bounded, recorded pipeline steps shared by the CLI and the HTTP surface."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import httpx

from catalog_sync.activity.repository import ActivityRepository
from catalog_sync.activity.tracker import ActivityDeltaTracker
from catalog_sync.catalog.client import CatalogSource, MangaDexClient
from catalog_sync.catalog.ingest import CatalogIngestor
from catalog_sync.catalog.repository import CatalogRepository
from catalog_sync.config import Settings
from catalog_sync.crawl.crawler import CrawlCursorManager
from catalog_sync.crawl.cursors import CursorRepository
from catalog_sync.storage.database import SyncDatabase
from catalog_sync.sync.orchestrator import EntryDeltaSync, SyncOrchestrator
from catalog_sync.sync.runs import RunStatus, SyncRunRepository
from catalog_sync.workqueue.health import HealthReporter
from catalog_sync.workqueue.repository import WorkQueueRepository

logger = logging.getLogger(__name__)

CRAWL_LIMIT_BOUNDS = (1, 200)
CRAWL_PAGE_BOUNDS = (25, 100)
ACTIVITY_PAGES_BOUNDS = (1, 25)
ACTIVITY_CAP_BOUNDS = (1, 5000)
WINDOW_BOUNDS = (50, 500)
BATCH_BOUNDS = (1, 50)
LEASE_BOUNDS = (30, 600)
SAMPLE_BOUNDS = (5, 100)
STUCK_MINUTES_BOUNDS = (1, 1440)
RUNS_LIMIT_BOUNDS = (10, 200)


def clamp(value: int | None, bounds: tuple[int, int], default: int) -> int:
    """Clamp an optional caller value into ``bounds``, using ``default`` when missing."""

    low, high = bounds
    if value is None:
        value = default
    return max(low, min(high, value))


class PipelineSteps:
    """Wires repositories and components over one database and one catalog source."""

    def __init__(
        self,
        *,
        settings: Settings,
        database: SyncDatabase,
        source: CatalogSource,
    ) -> None:
        self.settings = settings
        self.database = database
        self.source = source

        engine = database.engine
        self.catalog = CatalogRepository(engine)
        self.cursors = CursorRepository(engine)
        self.activity = ActivityRepository(engine)
        self.queue = WorkQueueRepository(
            engine,
            retry_delay=timedelta(seconds=settings.queue.retry_delay_seconds),
        )
        self.runs = SyncRunRepository(engine)

        self.ingestor = CatalogIngestor(self.catalog, settings.catalog)
        self.tracker = ActivityDeltaTracker(
            source=source,
            cursors=self.cursors,
            activity=self.activity,
            catalog=self.catalog,
            source_name=settings.catalog.source_name,
            sample_size=settings.activity.sample_size,
        )
        self.orchestrator = SyncOrchestrator(
            queue=self.queue,
            activity=self.activity,
            processor=EntryDeltaSync(
                source=source,
                ingestor=self.ingestor,
                tracker=self.tracker,
                stream_id=settings.activity.scoped_stream_id,
            ),
        )
        self.health = HealthReporter(self.queue)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> PipelineSteps:
        """Open the database (migrated to head) and an HTTP catalog client."""

        settings.validate()
        database = SyncDatabase(settings.db_path)
        database.init_schema()
        return cls(
            settings=settings,
            database=database,
            source=MangaDexClient(settings.catalog, transport=transport),
        )

    def close(self) -> None:
        close = getattr(self.source, "close", None)
        if callable(close):
            close()
        self.database.close()

    def __enter__(self) -> PipelineSteps:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def crawl_step(
        self,
        *,
        limit: int | None = None,
        page_limit: int | None = None,
        stream_id: str | None = None,
    ) -> dict[str, Any]:
        stream = stream_id or self.settings.crawl.stream_id
        run_limit = clamp(limit, CRAWL_LIMIT_BOUNDS, self.settings.crawl.run_limit)
        page = None
        if page_limit is not None:
            page = clamp(page_limit, CRAWL_PAGE_BOUNDS, self.settings.crawl.page_limit)
        manager = CrawlCursorManager(
            source=self.source,
            cursors=self.cursors,
            ingestor=self.ingestor,
            stream_id=stream,
        )
        return self._recorded(
            "crawl_step",
            stream,
            lambda: manager.step(run_limit, page_limit=page).as_dict(),
        )

    def activity_sync(
        self,
        *,
        stream_id: str | None = None,
        max_pages: int | None = None,
        hard_cap: int | None = None,
        force: bool = False,
    ) -> dict[str, Any]:
        stream = stream_id or self.settings.activity.stream_id
        pages = clamp(max_pages, ACTIVITY_PAGES_BOUNDS, self.settings.activity.max_pages)
        cap = clamp(hard_cap, ACTIVITY_CAP_BOUNDS, self.settings.activity.hard_cap)
        return self._recorded(
            "activity_sync",
            stream,
            lambda: self.tracker.sync(pages, cap, force, stream_id=stream).as_dict(),
        )

    def activity_peek(self, *, stream_id: str | None = None, limit: int = 10) -> dict[str, Any]:
        stream = stream_id or self.settings.activity.stream_id
        return self.tracker.peek(stream_id=stream, limit=limit).as_dict()

    def process_activity(
        self,
        *,
        window: int | None = None,
        batch: int | None = None,
        lock_seconds: int | None = None,
    ) -> dict[str, Any]:
        queue = self.settings.queue
        enqueue_window = clamp(window, WINDOW_BOUNDS, queue.enqueue_window)
        batch_size = clamp(batch, BATCH_BOUNDS, queue.batch_size)
        lease = clamp(lock_seconds, LEASE_BOUNDS, queue.lease_seconds)
        return self._recorded(
            "process_activity",
            None,
            lambda: self.orchestrator.run(enqueue_window, batch_size, lease).as_dict(),
        )

    def queue_health(
        self,
        *,
        sample: int | None = None,
        stuck_minutes: int | None = None,
    ) -> dict[str, Any]:
        size = clamp(sample, SAMPLE_BOUNDS, self.settings.health.sample)
        minutes = clamp(stuck_minutes, STUCK_MINUTES_BOUNDS, self.settings.health.stuck_minutes)
        return self.health.report(size, minutes).as_dict()

    def worker_runs(self, *, limit: int | None = None) -> dict[str, Any]:
        size = clamp(limit, RUNS_LIMIT_BOUNDS, 60)
        runs = self.runs.list_recent(size)
        return {"limit": size, "runs": [run.as_dict() for run in runs]}

    def run_pipeline(self) -> dict[str, Any]:
        """Activity sync on the main stream followed by one orchestrator run."""

        return self._recorded(
            "run_pipeline",
            self.settings.activity.stream_id,
            lambda: {
                "activity_sync": self.activity_sync(),
                "process_activity": self.process_activity(),
            },
        )

    def _recorded(
        self,
        step: str,
        stream_id: str | None,
        action: Callable[[], dict[str, Any]],
    ) -> dict[str, Any]:
        run_id = self.runs.start_run(step, stream_id=stream_id)
        try:
            summary = action()
        except Exception as exc:
            self.runs.finish_run(run_id, RunStatus.FAILED, error_summary=str(exc))
            raise
        self.runs.finish_run(run_id, RunStatus.SUCCEEDED, summary=_summary_counts(summary))
        return {"run_id": run_id, **summary}


def _summary_counts(summary: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value
        for key, value in summary.items()
        if isinstance(value, (int, float, str, bool)) or value is None
    }
