"""Ledger of pipeline step invocations."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from catalog_sync.storage.common import to_db_datetime, to_utc_aware, to_utc_aware_or_none, utc_now
from catalog_sync.storage.sqlmodel_models import SyncRun

MIN_LIST_LIMIT = 10
MAX_LIST_LIMIT = 200
MAX_ERROR_CHARS = 2_000


class RunStatus(str, Enum):
    """Lifecycle states for recorded step runs."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class SyncRunView:
    run_id: str
    step: str
    stream_id: str | None
    status: RunStatus
    started_at: datetime
    finished_at: datetime | None
    summary: dict[str, Any] | None
    error_summary: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "step": self.step,
            "stream_id": self.stream_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "summary": self.summary,
            "error_summary": self.error_summary,
        }


class SyncRunRepository:
    """Owner of the ``sync_runs`` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def start_run(self, step: str, *, stream_id: str | None = None) -> str:
        run_id = str(uuid4())
        with Session(self.engine) as session:
            session.add(
                SyncRun(
                    run_id=run_id,
                    step=step,
                    stream_id=stream_id,
                    status=RunStatus.RUNNING.value,
                    started_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()
        return run_id

    def finish_run(
        self,
        run_id: str,
        status: RunStatus,
        *,
        summary: dict[str, Any] | None = None,
        error_summary: str | None = None,
    ) -> None:
        with Session(self.engine) as session:
            run = session.get(SyncRun, run_id)
            if run is None:
                raise RuntimeError(f"Run not found: {run_id}")
            run.status = status.value
            run.finished_at = to_db_datetime(utc_now())
            run.summary_json = (
                json.dumps(summary, sort_keys=True, default=str) if summary is not None else None
            )
            run.error_summary = error_summary[:MAX_ERROR_CHARS] if error_summary else None
            session.add(run)
            session.commit()

    def list_recent(self, limit: int = 60, *, step: str | None = None) -> list[SyncRunView]:
        limit = max(MIN_LIST_LIMIT, min(MAX_LIST_LIMIT, limit))
        with Session(self.engine) as session:
            statement = select(SyncRun)
            if step is not None:
                statement = statement.where(SyncRun.step == step)
            rows = session.exec(
                statement.order_by(col(SyncRun.started_at).desc(), col(SyncRun.run_id).desc())
                .limit(limit),
            ).all()
        return [
            SyncRunView(
                run_id=row.run_id,
                step=row.step,
                stream_id=row.stream_id,
                status=RunStatus(row.status),
                started_at=to_utc_aware(row.started_at),
                finished_at=to_utc_aware_or_none(row.finished_at),
                summary=json.loads(row.summary_json) if row.summary_json else None,
                error_summary=row.error_summary,
            )
            for row in rows
        ]
