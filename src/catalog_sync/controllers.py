"""Controllers for catalog-sync CLI commands."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from catalog_sync.config import Settings
from catalog_sync.crawl.models import CursorKind
from catalog_sync.sync.steps import PipelineSteps
from catalog_sync.workqueue.models import QueueItemStatus


@dataclass(slots=True)
class CrawlStepCommand:
    db_path: Path | None
    limit: int | None
    page_limit: int | None
    stream_id: str | None


@dataclass(slots=True)
class ActivitySyncCommand:
    db_path: Path | None
    stream_id: str | None
    max_pages: int | None
    hard_cap: int | None
    force: bool


@dataclass(slots=True)
class ActivityPeekCommand:
    db_path: Path | None
    stream_id: str | None
    limit: int


@dataclass(slots=True)
class QueueProcessCommand:
    db_path: Path | None
    window: int | None
    batch: int | None
    lock_seconds: int | None


@dataclass(slots=True)
class QueueHealthCommand:
    db_path: Path | None
    sample: int | None
    stuck_minutes: int | None


@dataclass(slots=True)
class QueueListCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class CursorBootstrapCommand:
    db_path: Path | None
    stream_id: str
    kind: str
    page_size: int


StepsFactory = Callable[[Settings], PipelineSteps]


class SyncCliController:
    """Coordinates pipeline command execution and renders printable lines."""

    def __init__(self, steps_factory: StepsFactory | None = None) -> None:
        self.steps_factory = steps_factory or PipelineSteps.from_settings

    def crawl_step(self, command: CrawlStepCommand) -> list[str]:
        with self._steps(command.db_path) as steps:
            result = steps.crawl_step(
                limit=command.limit,
                page_limit=command.page_limit,
                stream_id=command.stream_id,
            )
        page = result["page"]
        lines = [
            "Crawl step completed: "
            f"run_id={result['run_id']} stream={result['stream_id']} "
            f"offset={page['offset']} limit={page['limit']} total={page['total']} "
            f"processed={result['processed_count']} errors={len(result['errors'])} "
            f"next_offset={result['next_offset']} wrapped={result['wrapped']}",
        ]
        lines.extend(f"  error id={err['id']}: {err['error']}" for err in result["errors"])
        return lines

    def activity_sync(self, command: ActivitySyncCommand) -> list[str]:
        with self._steps(command.db_path) as steps:
            result = steps.activity_sync(
                stream_id=command.stream_id,
                max_pages=command.max_pages,
                hard_cap=command.hard_cap,
                force=command.force,
            )
        return [
            "Activity sync completed: "
            f"run_id={result['run_id']} stream={result['stream_id']} "
            f"pages={result['pages']} processed={result['processed']} "
            f"stored={result['stored']} forced={result['forced']} "
            f"cursor_advanced={result['cursor_advanced']}",
            f"Cursor before: {_cursor_text(result['cursor_before'])}",
            f"Cursor after: {_cursor_text(result['cursor_after'])}",
        ]

    def activity_peek(self, command: ActivityPeekCommand) -> list[str]:
        with self._steps(command.db_path) as steps:
            result = steps.activity_peek(stream_id=command.stream_id, limit=command.limit)
        lines = [
            f"Activity peek: stream={result['stream_id']} "
            f"cursor={_cursor_text(result['cursor'])} items={len(result['items'])}",
        ]
        lines.extend(
            f"  {'NEW ' if item['is_new'] else 'seen'} {item['updated_at']} "
            f"id={item['id']} parent={item['parent_id']} ch={item['chapter']} lang={item['lang']}"
            for item in result["items"]
        )
        return lines

    def process_queue(self, command: QueueProcessCommand) -> list[str]:
        with self._steps(command.db_path) as steps:
            result = steps.process_activity(
                window=command.window,
                batch=command.batch,
                lock_seconds=command.lock_seconds,
            )
        lines = [
            "Queue processed: "
            f"run_id={result['run_id']} enqueued={result['enqueued_unique_ids']} "
            f"claimed={result['claimed']} succeeded={result['succeeded']} "
            f"failed={result['failed']}",
        ]
        lines.extend(
            f"  queue_id={item['queue_id']} external_id={item['external_id']} "
            f"ok={item['ok']}" + (f" error={item['error']}" if item["error"] else "")
            for item in result["results"]
        )
        return lines

    def queue_health(self, command: QueueHealthCommand) -> list[str]:
        with self._steps(command.db_path) as steps:
            report = steps.queue_health(
                sample=command.sample,
                stuck_minutes=command.stuck_minutes,
            )
        counts = " ".join(f"{status}={count}" for status, count in sorted(report["counts"].items()))
        lines = [
            f"Queue health at {report['generated_at']}: total={report['total']} {counts}",
            f"Backlog: {report['backlog']}",
            f"Stuck processing leases: {report['stuck_processing']}",
            f"Errors: {report['error_count']}",
        ]
        lines.extend(
            f"  error {item['external_id']}: {item['last_error']} (next_run_at={item['next_run_at']})"
            for item in report["recent_errors"]
        )
        lines.append(f"Recently done: {len(report['recent_done'])}")
        lines.append(
            f"Pending untouched for {report['stuck_minutes']}+ minutes: {len(report['old_pending'])}",
        )
        lines.extend(
            f"  pending {item['external_id']} updated_at={item['updated_at']}"
            for item in report["old_pending"]
        )
        return lines

    def list_queue(self, command: QueueListCommand) -> list[str]:
        status = QueueItemStatus(command.status) if command.status else None
        with self._steps(command.db_path) as steps:
            items = steps.queue.list_items(status=status, limit=command.limit)
        if not items:
            return ["No queue items."]
        return [
            f"{item.id} {item.external_id} status={item.status.value} "
            f"next_run_at={item.next_run_at.isoformat()} "
            f"locked_until={item.locked_until.isoformat() if item.locked_until else '-'}"
            + (f" last_error={item.last_error}" if item.last_error else "")
            for item in items
        ]

    def run_pipeline(self, db_path: Path | None) -> list[str]:
        with self._steps(db_path) as steps:
            result = steps.run_pipeline()
        activity = result["activity_sync"]
        processed = result["process_activity"]
        return [
            f"Pipeline run completed: run_id={result['run_id']}",
            f"Activity sync: processed={activity['processed']} stored={activity['stored']} "
            f"cursor_advanced={activity['cursor_advanced']}",
            f"Queue: enqueued={processed['enqueued_unique_ids']} claimed={processed['claimed']} "
            f"succeeded={processed['succeeded']} failed={processed['failed']}",
        ]

    def list_runs(self, db_path: Path | None, limit: int) -> list[str]:
        with self._steps(db_path) as steps:
            result = steps.worker_runs(limit=limit)
        if not result["runs"]:
            return ["No recorded runs."]
        lines = []
        for run in result["runs"]:
            line = (
                f"{run['started_at']} {run['step']} status={run['status']} "
                f"stream={run['stream_id'] or '-'} run_id={run['run_id']}"
            )
            if run["error_summary"]:
                line += f" error={run['error_summary']}"
            elif run["summary"]:
                line += f" summary={json.dumps(run['summary'], sort_keys=True)}"
            lines.append(line)
        return lines

    def list_cursors(self, db_path: Path | None) -> list[str]:
        with self._steps(db_path) as steps:
            cursors = steps.cursors.list_all()
        return [_format_cursor(cursor.as_dict()) for cursor in cursors] or ["No cursors."]

    def bootstrap_cursor(self, command: CursorBootstrapCommand) -> list[str]:
        with self._steps(command.db_path) as steps:
            cursor = steps.cursors.ensure_stream(
                command.stream_id,
                CursorKind(command.kind),
                page_size=command.page_size,
            )
        return [f"Cursor ready: {_format_cursor(cursor.as_dict())}"]

    @contextmanager
    def _steps(self, db_path: Path | None) -> Iterator[PipelineSteps]:
        steps = self.steps_factory(Settings.from_env(db_path=db_path))
        try:
            yield steps
        finally:
            steps.close()


def _cursor_text(cursor: dict[str, Any] | None) -> str:
    if not cursor:
        return "-"
    return f"{cursor['updated_at']} / {cursor['last_id'] or '-'}"


def _format_cursor(cursor: dict[str, Any]) -> str:
    if cursor["kind"] == CursorKind.OFFSET.value:
        position = f"offset={cursor['cursor_offset']} total={cursor['total']}"
    else:
        position = f"timestamp={cursor['cursor_timestamp']} last_id={cursor['cursor_last_id']}"
    return (
        f"{cursor['stream_id']} kind={cursor['kind']} {position} "
        f"page_size={cursor['page_size']} processed={cursor['processed_count']} "
        f"updated_at={cursor['updated_at']}"
    )
