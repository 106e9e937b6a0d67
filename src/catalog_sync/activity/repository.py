"""Persistence for mirrored activity feed records."""

from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from catalog_sync.activity.models import ActivityRecordView, ActivityRecordWrite
from catalog_sync.storage.common import (
    to_db_datetime,
    to_utc_aware,
    to_utc_aware_or_none,
    utc_now,
)
from catalog_sync.storage.sqlmodel_models import ActivityRecord


class ActivityRepository:
    """Owner of the ``activity_records`` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def upsert_record(self, record: ActivityRecordWrite) -> None:
        """Insert or overwrite the record keyed by its remote item id."""

        values = {
            "external_item_id": record.external_item_id,
            "external_parent_id": record.external_parent_id,
            "local_parent_id": record.local_parent_id,
            "chapter": record.chapter,
            "volume": record.volume,
            "title": record.title,
            "translated_language": record.translated_language,
            "group_id": record.group_id,
            "group_name": record.group_name,
            "remote_updated_at": _db_or_none(record.remote_updated_at),
            "remote_readable_at": _db_or_none(record.remote_readable_at),
            "remote_published_at": _db_or_none(record.remote_published_at),
            "raw_json": json.dumps(record.raw_payload, sort_keys=True, default=str),
            "updated_at": to_db_datetime(utc_now()),
        }
        statement = sqlite_insert(ActivityRecord).values(**values)
        statement = statement.on_conflict_do_update(
            index_elements=["external_item_id"],
            set_={key: value for key, value in values.items() if key != "external_item_id"},
        )
        with Session(self.engine) as session:
            session.exec(statement)  # type: ignore[call-overload]
            session.commit()

    def list_recent_parent_ids(self, window: int) -> list[str]:
        """Distinct parent ids among the ``window`` most recently stored records, newest first."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(ActivityRecord.external_parent_id)
                .order_by(col(ActivityRecord.updated_at).desc(), col(ActivityRecord.id).desc())
                .limit(max(1, window)),
            ).all()
        return list(dict.fromkeys(parent_id for parent_id in rows if parent_id))

    def list_recent(self, limit: int = 25) -> list[ActivityRecordView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(ActivityRecord)
                .order_by(col(ActivityRecord.updated_at).desc(), col(ActivityRecord.id).desc())
                .limit(max(1, limit)),
            ).all()
        return [
            ActivityRecordView(
                external_item_id=row.external_item_id,
                external_parent_id=row.external_parent_id,
                local_parent_id=row.local_parent_id,
                chapter=row.chapter,
                translated_language=row.translated_language,
                remote_updated_at=to_utc_aware_or_none(row.remote_updated_at),
                updated_at=to_utc_aware(row.updated_at),
            )
            for row in rows
        ]

    def count(self) -> int:
        with Session(self.engine) as session:
            return session.exec(select(func.count()).select_from(ActivityRecord)).one()


def _db_or_none(value: datetime | None) -> datetime | None:
    return to_db_datetime(value) if value is not None else None
