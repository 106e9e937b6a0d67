"""Persistence for named crawl stream cursors."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, func, or_
from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from catalog_sync.crawl.models import CursorKind, CursorView
from catalog_sync.errors import CursorKindMismatchError, CursorNotFoundError
from catalog_sync.storage.common import (
    to_db_datetime,
    to_utc_aware,
    to_utc_aware_or_none,
    utc_now,
)
from catalog_sync.storage.sqlmodel_models import CrawlCursor

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
# Remote listing and feed endpoints reject larger page limits.
MAX_PAGE_SIZE = 100


class CursorRepository:
    """Owner of the ``crawl_cursors`` table; every mutation is a single-row write."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, stream_id: str) -> CursorView | None:
        with Session(self.engine) as session:
            row = session.get(CrawlCursor, stream_id)
            return _to_view(row) if row is not None else None

    def require(self, stream_id: str, kind: CursorKind | None = None) -> CursorView:
        """Load the stream cursor, optionally insisting on its pagination kind."""

        cursor = self.get(stream_id)
        if cursor is None:
            raise CursorNotFoundError(stream_id)
        if kind is not None and cursor.kind is not kind:
            raise CursorKindMismatchError(stream_id, kind.value, cursor.kind.value)
        return cursor

    def list_all(self) -> list[CursorView]:
        with Session(self.engine) as session:
            rows = session.exec(select(CrawlCursor).order_by(col(CrawlCursor.stream_id))).all()
        return [_to_view(row) for row in rows]

    def ensure_stream(
        self,
        stream_id: str,
        kind: CursorKind,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> CursorView:
        """Create the stream cursor when missing; existing cursors are left untouched."""

        if not 0 < page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be within 1..{MAX_PAGE_SIZE}")
        now = to_db_datetime(utc_now())
        statement = (
            sqlite_insert(CrawlCursor)
            .values(
                stream_id=stream_id,
                kind=kind.value,
                cursor_offset=0,
                page_size=page_size,
                processed_count=0,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["stream_id"])
        )
        with Session(self.engine) as session:
            session.exec(statement)  # type: ignore[call-overload]
            session.commit()
        return self.require(stream_id)

    def save_offset(
        self,
        stream_id: str,
        *,
        offset: int,
        total: int | None,
        processed: int,
    ) -> None:
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(CrawlCursor)
                .where(col(CrawlCursor.stream_id) == stream_id)
                .values(
                    cursor_offset=offset,
                    total=total,
                    processed_count=col(CrawlCursor.processed_count) + processed,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise CursorNotFoundError(stream_id)
            session.commit()

    def advance_time_cursor(
        self,
        stream_id: str,
        *,
        timestamp: datetime,
        last_id: str | None,
    ) -> bool:
        """Move the time+id cursor forward; returns False when it would not advance."""

        ts = to_db_datetime(timestamp)
        tie_id = last_id or ""
        with Session(self.engine) as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(CrawlCursor)
                .where(
                    col(CrawlCursor.stream_id) == stream_id,
                    or_(
                        col(CrawlCursor.cursor_timestamp).is_(None),
                        col(CrawlCursor.cursor_timestamp) < ts,
                        and_(
                            col(CrawlCursor.cursor_timestamp) == ts,
                            func.coalesce(col(CrawlCursor.cursor_last_id), "") < tie_id,
                        ),
                    ),
                )
                .values(cursor_timestamp=ts, cursor_last_id=last_id),
            )
            session.commit()
        advanced = result.rowcount == 1
        if not advanced:
            logger.debug("Cursor %s not advanced to (%s, %s)", stream_id, timestamp, last_id)
        return advanced

    def touch(self, stream_id: str, *, processed: int = 0) -> None:
        """Heartbeat the stream and add ``processed`` to its monotonic counter."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(CrawlCursor)
                .where(col(CrawlCursor.stream_id) == stream_id)
                .values(
                    processed_count=col(CrawlCursor.processed_count) + max(0, processed),
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise CursorNotFoundError(stream_id)
            session.commit()


def _to_view(row: CrawlCursor) -> CursorView:
    return CursorView(
        stream_id=row.stream_id,
        kind=CursorKind(row.kind),
        cursor_offset=row.cursor_offset,
        cursor_timestamp=to_utc_aware_or_none(row.cursor_timestamp),
        cursor_last_id=row.cursor_last_id,
        page_size=row.page_size,
        total=row.total,
        processed_count=row.processed_count,
        updated_at=to_utc_aware(row.updated_at),
    )
