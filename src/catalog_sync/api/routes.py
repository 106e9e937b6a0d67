"""Trigger routes: admin steps, the cron trigger and liveness."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from catalog_sync import __version__
from catalog_sync.api.auth import require_admin, require_cron
from catalog_sync.api.deps import StepsDep

TRUTHY = {"1", "true", "yes", "on"}

health_router = APIRouter()
admin_router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])
cron_router = APIRouter(prefix="/api/cron", dependencies=[Depends(require_cron)])


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in TRUTHY


def _int(value: str | None) -> int | None:
    """Lenient integer parameter; anything unparsable falls back to the step default."""

    try:
        return int((value or "").strip())
    except ValueError:
        return None


def _ok(payload: dict[str, Any]) -> dict[str, Any]:
    return {"ok": True, **payload}


@health_router.get("/health")
def health() -> dict[str, Any]:
    return {"status": "healthy", "version": __version__}


@admin_router.get("/crawl-step")
def crawl_step(
    steps: StepsDep,
    limit: str | None = Query(None),
    page_limit: str | None = Query(None),
    stream_id: str | None = Query(None),
) -> dict[str, Any]:
    return _ok(
        steps.crawl_step(limit=_int(limit), page_limit=_int(page_limit), stream_id=stream_id),
    )


@admin_router.get("/activity-sync")
def activity_sync(
    steps: StepsDep,
    state_id: str | None = Query(None),
    stream_id: str | None = Query(None),
    max_pages: str | None = Query(None),
    hard_cap: str | None = Query(None),
    force: str | None = Query(None),
    peek: str | None = Query(None),
) -> dict[str, Any]:
    stream = stream_id or state_id
    if _flag(peek):
        return _ok(steps.activity_peek(stream_id=stream))
    return _ok(
        steps.activity_sync(
            stream_id=stream,
            max_pages=_int(max_pages),
            hard_cap=_int(hard_cap),
            force=_flag(force),
        ),
    )


@admin_router.get("/process-activity")
def process_activity(
    steps: StepsDep,
    window: str | None = Query(None),
    batch: str | None = Query(None),
    lock_seconds: str | None = Query(None),
) -> dict[str, Any]:
    return _ok(
        steps.process_activity(
            window=_int(window),
            batch=_int(batch),
            lock_seconds=_int(lock_seconds),
        ),
    )


@admin_router.get("/queue-health")
def queue_health(
    steps: StepsDep,
    sample: str | None = Query(None),
    stuck_minutes: str | None = Query(None),
) -> dict[str, Any]:
    return _ok(steps.queue_health(sample=_int(sample), stuck_minutes=_int(stuck_minutes)))


@admin_router.get("/worker-runs")
def worker_runs(steps: StepsDep, limit: str | None = Query(None)) -> dict[str, Any]:
    return _ok(steps.worker_runs(limit=_int(limit)))


@admin_router.get("/run-pipeline")
def run_pipeline(steps: StepsDep) -> dict[str, Any]:
    return _ok(steps.run_pipeline())


@cron_router.get("/activity-sync")
def cron_activity_sync(
    steps: StepsDep,
    state_id: str | None = Query(None),
    stream_id: str | None = Query(None),
    max_pages: str | None = Query(None),
    hard_cap: str | None = Query(None),
    force: str | None = Query(None),
) -> dict[str, Any]:
    return _ok(
        steps.activity_sync(
            stream_id=stream_id or state_id,
            max_pages=_int(max_pages),
            hard_cap=_int(hard_cap),
            force=_flag(force),
        ),
    )
