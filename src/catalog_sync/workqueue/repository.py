"""Durable work queue with lease-protected atomic claims."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy import and_, func, or_
from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col, select

from catalog_sync.storage.common import to_db_datetime, to_utc_aware, to_utc_aware_or_none, utc_now
from catalog_sync.storage.sqlmodel_models import QueueItem
from catalog_sync.workqueue.models import (
    Failure,
    Outcome,
    QueueItemStatus,
    QueueItemView,
    Success,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = timedelta(minutes=5)
MAX_ERROR_CHARS = 2_000


class WorkQueueRepository:
    """Owner of the ``queue_items`` table.

    Rows move ``pending -> processing -> done | error`` and are never deleted.
    Only :meth:`claim_batch` moves a row into ``processing`` and only the
    holder of the current lock token can move it out again.
    """

    def __init__(self, engine: Engine, *, retry_delay: timedelta = DEFAULT_RETRY_DELAY) -> None:
        if retry_delay.total_seconds() <= 0:
            raise ValueError("retry_delay must be > 0")
        self.engine = engine
        self.retry_delay = retry_delay

    def enqueue_or_touch(self, external_id: str, observed_at: datetime) -> None:
        self.enqueue_many([external_id], observed_at)

    def enqueue_many(self, external_ids: Iterable[str], observed_at: datetime) -> int:
        """Create missing rows as pending; refresh only sighting times on existing rows.

        Status, lease and last error of existing rows are never touched here.
        """

        ids = list(dict.fromkeys(value for value in external_ids if value))
        if not ids:
            return 0
        seen = to_db_datetime(observed_at)
        now = to_db_datetime(utc_now())
        statement = sqlite_insert(QueueItem).values(
            [
                {
                    "external_id": external_id,
                    "status": QueueItemStatus.PENDING.value,
                    "last_seen_at": seen,
                    "next_run_at": seen,
                    "created_at": now,
                    "updated_at": now,
                }
                for external_id in ids
            ],
        )
        statement = statement.on_conflict_do_update(
            index_elements=["external_id"],
            set_={
                "last_seen_at": statement.excluded.last_seen_at,
                "next_run_at": statement.excluded.next_run_at,
                "updated_at": statement.excluded.updated_at,
            },
        )
        with Session(self.engine) as session:
            session.exec(statement)  # type: ignore[call-overload]
            session.commit()
        return len(ids)

    def claim_batch(
        self,
        max_items: int,
        lease_seconds: int,
        *,
        now: datetime | None = None,
    ) -> list[QueueItemView]:
        """Lease up to ``max_items`` eligible rows.

        Each row is flipped by a conditional UPDATE that re-checks eligibility,
        so a row raced away by a concurrent claimer yields ``rowcount == 0`` and
        is skipped instead of being claimed twice.
        """

        if max_items <= 0:
            return []
        if lease_seconds <= 0:
            raise ValueError("lease_seconds must be > 0")
        now = now or utc_now()
        db_now = to_db_datetime(now)
        locked_until = to_db_datetime(now + timedelta(seconds=lease_seconds))

        claimed: dict[int, str] = {}
        lost: set[int] = set()
        while len(claimed) < max_items:
            with Session(self.engine) as session:
                candidates = session.exec(
                    select(QueueItem.id)
                    .where(_eligible(db_now), col(QueueItem.id).not_in(set(claimed) | lost))
                    .order_by(col(QueueItem.next_run_at).asc(), col(QueueItem.id).asc())
                    .limit(max_items - len(claimed)),
                ).all()
            if not candidates:
                break

            for item_id in candidates:
                if item_id is None:
                    continue
                token = uuid4().hex
                with Session(self.engine) as session:
                    result = session.exec(  # type: ignore[call-overload]
                        sa_update(QueueItem)
                        .where(col(QueueItem.id) == item_id, _eligible(db_now))
                        .values(
                            status=QueueItemStatus.PROCESSING.value,
                            locked_until=locked_until,
                            lock_token=token,
                            updated_at=db_now,
                        ),
                    )
                    if result.rowcount != 1:
                        session.rollback()
                        lost.add(item_id)
                        continue
                    session.commit()
                claimed[item_id] = token

        if not claimed:
            return []
        with Session(self.engine) as session:
            rows = session.exec(
                select(QueueItem)
                .where(col(QueueItem.id).in_(list(claimed)))
                .order_by(col(QueueItem.next_run_at).asc(), col(QueueItem.id).asc()),
            ).all()
        views = [_to_view(row) for row in rows if row.lock_token == claimed.get(row.id or -1)]
        logger.debug("Claimed %d queue items (lost %d races)", len(views), len(lost))
        return views

    def resolve(
        self,
        item_id: int,
        lock_token: str,
        outcome: Outcome,
        *,
        now: datetime | None = None,
    ) -> bool:
        """Release the lease with the outcome; a stale token is a no-op returning False."""

        now = now or utc_now()
        db_now = to_db_datetime(now)
        if isinstance(outcome, Success):
            values = {
                "status": QueueItemStatus.DONE.value,
                "locked_until": None,
                "lock_token": None,
                "last_error": None,
                "updated_at": db_now,
            }
        elif isinstance(outcome, Failure):
            values = {
                "status": QueueItemStatus.ERROR.value,
                "next_run_at": to_db_datetime(now + self.retry_delay),
                "locked_until": None,
                "lock_token": None,
                "last_error": outcome.message[:MAX_ERROR_CHARS],
                "updated_at": db_now,
            }
        else:
            raise TypeError(f"Unsupported resolve outcome: {outcome!r}")

        with Session(self.engine) as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(QueueItem)
                .where(
                    col(QueueItem.id) == item_id,
                    col(QueueItem.lock_token) == lock_token,
                    col(QueueItem.status) == QueueItemStatus.PROCESSING.value,
                )
                .values(**values),
            )
            if result.rowcount != 1:
                session.rollback()
                logger.warning(
                    "Dropped stale resolve for queue item %s (lease no longer held)",
                    item_id,
                )
                return False
            session.commit()
        return True

    def get(self, external_id: str) -> QueueItemView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(QueueItem).where(QueueItem.external_id == external_id),
            ).one_or_none()
        return _to_view(row) if row is not None else None

    def list_items(
        self,
        *,
        status: QueueItemStatus | None = None,
        limit: int = 50,
    ) -> list[QueueItemView]:
        with Session(self.engine) as session:
            statement = select(QueueItem)
            if status is not None:
                statement = statement.where(QueueItem.status == status.value)
            rows = session.exec(
                statement.order_by(col(QueueItem.updated_at).desc(), col(QueueItem.id).desc())
                .limit(max(1, limit)),
            ).all()
        return [_to_view(row) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(QueueItem.status, func.count()).group_by(QueueItem.status),
            ).all()
        return {status: count for status, count in rows}

    def count_stuck(self, now: datetime) -> int:
        with Session(self.engine) as session:
            return session.exec(
                select(func.count()).select_from(QueueItem).where(_stuck(to_db_datetime(now))),
            ).one()

    def list_stuck(self, now: datetime, limit: int) -> list[QueueItemView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(QueueItem)
                .where(_stuck(to_db_datetime(now)))
                .order_by(col(QueueItem.locked_until).asc())
                .limit(max(1, limit)),
            ).all()
        return [_to_view(row) for row in rows]

    def list_stale_pending(self, cutoff: datetime, limit: int) -> list[QueueItemView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(QueueItem)
                .where(
                    QueueItem.status == QueueItemStatus.PENDING.value,
                    col(QueueItem.updated_at) < to_db_datetime(cutoff),
                )
                .order_by(col(QueueItem.updated_at).asc(), col(QueueItem.id).asc())
                .limit(max(1, limit)),
            ).all()
        return [_to_view(row) for row in rows]


def _eligible(db_now: datetime) -> ColumnElement[bool]:
    return or_(
        col(QueueItem.status) == QueueItemStatus.PENDING.value,
        and_(
            col(QueueItem.status) == QueueItemStatus.PROCESSING.value,
            col(QueueItem.locked_until) < db_now,
        ),
        and_(
            col(QueueItem.status) == QueueItemStatus.ERROR.value,
            col(QueueItem.next_run_at) <= db_now,
        ),
    )


def _stuck(db_now: datetime) -> ColumnElement[bool]:
    return and_(
        col(QueueItem.status) == QueueItemStatus.PROCESSING.value,
        col(QueueItem.locked_until).is_not(None),
        col(QueueItem.locked_until) < db_now,
    )


def _to_view(row: QueueItem) -> QueueItemView:
    if row.id is None:
        raise RuntimeError("Queue row has no id")
    return QueueItemView(
        id=row.id,
        external_id=row.external_id,
        status=QueueItemStatus(row.status),
        last_seen_at=to_utc_aware(row.last_seen_at),
        next_run_at=to_utc_aware(row.next_run_at),
        locked_until=to_utc_aware_or_none(row.locked_until),
        lock_token=row.lock_token,
        last_error=row.last_error,
        updated_at=to_utc_aware(row.updated_at),
    )
