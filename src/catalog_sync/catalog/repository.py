"""Persistence for catalog entries, dependent art jobs and the change log."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from catalog_sync.catalog.models import (
    ArtJobStatus,
    IngestAction,
    NormalizedEntry,
    UpsertEntryResult,
)
from catalog_sync.storage.common import to_db_datetime, utc_now
from catalog_sync.storage.sqlmodel_models import ArtJob, CatalogChangeLog, CatalogEntry

logger = logging.getLogger(__name__)

COMPARABLE_FIELDS = (
    "title",
    "title_english",
    "title_native",
    "title_preferred",
    "description",
    "status",
    "publication_year",
    "genres",
    "cover_image_url",
)
SLUG_SUFFIX_CHARS = 8


class CatalogRepository:
    """Owner of the ``catalog_entries``, ``art_jobs`` and ``catalog_change_log`` tables."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def upsert_entry(self, entry: NormalizedEntry) -> UpsertEntryResult:
        """Insert or update the local entry keyed by ``(source, external_id)``."""

        now = to_db_datetime(utc_now())
        snapshot = json.dumps(entry.raw_payload, sort_keys=True, default=str)
        with Session(self.engine) as session:
            existing = self._find(session, entry.source, entry.external_id)
            if existing is None:
                row = CatalogEntry(
                    slug=self._available_slug(session, entry),
                    source=entry.source,
                    external_id=entry.external_id,
                    title=entry.title,
                    title_english=entry.title_english,
                    title_native=entry.title_native,
                    title_preferred=entry.title_preferred,
                    description=entry.description,
                    status=entry.status,
                    publication_year=entry.publication_year,
                    genres_json=json.dumps(entry.merged_genres),
                    cover_image_url=entry.cover_image_url,
                    snapshot_json=snapshot,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    existing = self._find(session, entry.source, entry.external_id)
                    if existing is None:
                        raise
                else:
                    session.refresh(row)
                    if row.id is None:
                        raise RuntimeError("Inserted catalog entry has no id")
                    changed = {
                        name: {"before": None, "after": value}
                        for name, value in _comparable(entry).items()
                        if value not in (None, [], "")
                    }
                    return UpsertEntryResult(
                        catalog_entry_id=row.id,
                        slug=row.slug,
                        action=IngestAction.INSERTED,
                        changed_fields=changed,
                    )

            if existing.id is None:
                raise RuntimeError("Catalog entry row has no id")
            changed = _diff(_row_comparable(existing), _comparable(entry))
            if changed:
                existing.title = entry.title
                existing.title_english = entry.title_english
                existing.title_native = entry.title_native
                existing.title_preferred = entry.title_preferred
                existing.description = entry.description
                existing.status = entry.status
                existing.publication_year = entry.publication_year
                existing.genres_json = json.dumps(entry.merged_genres)
                existing.cover_image_url = entry.cover_image_url
                existing.updated_at = now
            existing.snapshot_json = snapshot
            session.add(existing)
            session.commit()
            return UpsertEntryResult(
                catalog_entry_id=existing.id,
                slug=existing.slug,
                action=IngestAction.UPDATED if changed else IngestAction.UNCHANGED,
                changed_fields=changed,
            )

    def find_local_id(self, source: str, external_id: str) -> int | None:
        return self.find_local_ids(source, [external_id]).get(external_id)

    def find_local_ids(self, source: str, external_ids: Iterable[str]) -> dict[str, int]:
        ids = sorted({value for value in external_ids if value})
        if not ids:
            return {}
        with Session(self.engine) as session:
            rows = session.exec(
                select(CatalogEntry.external_id, CatalogEntry.id).where(
                    CatalogEntry.source == source,
                    col(CatalogEntry.external_id).in_(ids),
                ),
            ).all()
        return {external_id: entry_id for external_id, entry_id in rows if entry_id is not None}

    def get_entry(self, source: str, external_id: str) -> CatalogEntry | None:
        with Session(self.engine) as session:
            return self._find(session, source, external_id)

    def enqueue_art_job(self, catalog_entry_id: int) -> None:
        """Reset the entry's art job to pending, creating it when missing."""

        now = to_db_datetime(utc_now())
        statement = sqlite_insert(ArtJob).values(
            catalog_entry_id=catalog_entry_id,
            status=ArtJobStatus.PENDING.value,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        statement = statement.on_conflict_do_update(
            index_elements=["catalog_entry_id"],
            set_={"status": ArtJobStatus.PENDING.value, "updated_at": now},
        )
        with Session(self.engine) as session:
            session.exec(statement)  # type: ignore[call-overload]
            session.commit()

    def get_art_job(self, catalog_entry_id: int) -> ArtJob | None:
        with Session(self.engine) as session:
            return session.exec(
                select(ArtJob).where(ArtJob.catalog_entry_id == catalog_entry_id),
            ).one_or_none()

    def log_change(
        self,
        *,
        source: str,
        external_id: str,
        catalog_entry_id: int,
        remote_updated_at: str | None,
        action: IngestAction,
        changed_fields: dict[str, dict[str, Any]],
    ) -> bool:
        """Append a change-log row; returns False when the same remote revision is logged."""

        with Session(self.engine) as session:
            statement = select(CatalogChangeLog.id).where(
                CatalogChangeLog.source == source,
                CatalogChangeLog.external_id == external_id,
            )
            if remote_updated_at is None:
                statement = statement.where(col(CatalogChangeLog.remote_updated_at).is_(None))
            else:
                statement = statement.where(CatalogChangeLog.remote_updated_at == remote_updated_at)
            if session.exec(statement.limit(1)).first() is not None:
                return False

            session.add(
                CatalogChangeLog(
                    source=source,
                    external_id=external_id,
                    catalog_entry_id=catalog_entry_id,
                    remote_updated_at=remote_updated_at,
                    action=action.value,
                    changed_fields_json=json.dumps(changed_fields, sort_keys=True, default=str),
                    created_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()
            return True

    def list_changes(self, source: str, external_id: str) -> list[CatalogChangeLog]:
        with Session(self.engine) as session:
            return list(
                session.exec(
                    select(CatalogChangeLog)
                    .where(
                        CatalogChangeLog.source == source,
                        CatalogChangeLog.external_id == external_id,
                    )
                    .order_by(col(CatalogChangeLog.id).asc()),
                ).all(),
            )

    def _find(self, session: Session, source: str, external_id: str) -> CatalogEntry | None:
        return session.exec(
            select(CatalogEntry).where(
                CatalogEntry.source == source,
                CatalogEntry.external_id == external_id,
            ),
        ).one_or_none()

    def _available_slug(self, session: Session, entry: NormalizedEntry) -> str:
        taken = session.exec(
            select(CatalogEntry.external_id).where(CatalogEntry.slug == entry.slug),
        ).first()
        if taken is None or taken == entry.external_id:
            return entry.slug
        slug = f"{entry.slug}-{entry.external_id[:SLUG_SUFFIX_CHARS].lower()}"
        logger.info("Slug %s already taken by %s; using %s", entry.slug, taken, slug)
        return slug


def _comparable(entry: NormalizedEntry) -> dict[str, Any]:
    return {
        "title": entry.title,
        "title_english": entry.title_english,
        "title_native": entry.title_native,
        "title_preferred": entry.title_preferred,
        "description": entry.description,
        "status": entry.status,
        "publication_year": entry.publication_year,
        "genres": entry.merged_genres,
        "cover_image_url": entry.cover_image_url,
    }


def _row_comparable(row: CatalogEntry) -> dict[str, Any]:
    return {
        "title": row.title,
        "title_english": row.title_english,
        "title_native": row.title_native,
        "title_preferred": row.title_preferred,
        "description": row.description,
        "status": row.status,
        "publication_year": row.publication_year,
        "genres": json.loads(row.genres_json or "[]"),
        "cover_image_url": row.cover_image_url,
    }


def _diff(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    return {
        name: {"before": before.get(name), "after": after.get(name)}
        for name in COMPARABLE_FIELDS
        if before.get(name) != after.get(name)
    }
