"""Incremental mirror of the remote newest-first activity feed."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from catalog_sync.activity.models import (
    ActivityCursor,
    ActivityPeek,
    ActivityRecordWrite,
    ActivitySyncResult,
)
from catalog_sync.activity.repository import ActivityRepository
from catalog_sync.catalog.client import CatalogSource
from catalog_sync.catalog.repository import CatalogRepository
from catalog_sync.crawl.cursors import MAX_PAGE_SIZE, CursorRepository
from catalog_sync.crawl.models import CursorKind
from catalog_sync.storage.common import from_iso

logger = logging.getLogger(__name__)

MIN_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = MAX_PAGE_SIZE
DEFAULT_SAMPLE_SIZE = 25
DEFAULT_PEEK_LIMIT = 10


class ActivityDeltaTracker:
    """Scans the feed until it re-observes the persisted time+id cursor.

    The feed is assumed to be sorted by remote update time descending. Items
    arriving out of order behind the cursor are skipped silently.
    """

    def __init__(
        self,
        *,
        source: CatalogSource,
        cursors: CursorRepository,
        activity: ActivityRepository,
        catalog: CatalogRepository,
        source_name: str = "mangadex",
        sample_size: int = DEFAULT_SAMPLE_SIZE,
    ) -> None:
        self.source = source
        self.cursors = cursors
        self.activity = activity
        self.catalog = catalog
        self.source_name = source_name
        self.sample_size = sample_size

    def sync(
        self,
        max_pages: int,
        hard_cap: int,
        force: bool,
        *,
        stream_id: str,
        parent_external_id: str | None = None,
    ) -> ActivitySyncResult:
        if max_pages <= 0 or hard_cap <= 0:
            raise ValueError("max_pages and hard_cap must be > 0")
        state = self.cursors.require(stream_id, CursorKind.TIME)
        page_limit = max(MIN_PAGE_LIMIT, min(MAX_PAGE_LIMIT, state.page_size))
        before = _cursor_of(state.cursor_timestamp, state.cursor_last_id)

        result = ActivitySyncResult(
            stream_id=stream_id,
            forced=force,
            pages=0,
            processed=0,
            stored=0,
            cursor_before=before,
            newest_cursor=before,
            cursor_advanced=False,
            parent_external_id=parent_external_id,
        )
        newest: ActivityCursor | None = None
        offset = 0
        stop = False
        while not stop and result.pages < max_pages and result.processed < hard_cap:
            items = self.source.list_recent(
                page_limit,
                offset,
                parent_external_id=parent_external_id,
            )
            result.pages += 1
            if not items:
                break
            local_ids = self.catalog.find_local_ids(
                self.source_name,
                (parent for parent in map(_parent_id, items) if parent),
            )

            for item in items:
                if result.processed >= hard_cap:
                    stop = True
                    break
                item_id = str(item.get("id") or "")
                updated_at = _parse_time(_attributes(item).get("updatedAt"))
                if (
                    not force
                    and before is not None
                    and updated_at is not None
                    and ActivityCursor(updated_at, item_id) <= before
                ):
                    stop = True
                    break
                if newest is None and updated_at is not None:
                    newest = ActivityCursor(updated_at, item_id)

                result.processed += 1
                parent = _parent_id(item)
                if not parent or not item_id:
                    continue
                record = _to_record(item, item_id, parent, local_ids.get(parent), updated_at)
                self.activity.upsert_record(record)
                result.stored += 1
                if len(result.sample) < self.sample_size:
                    result.sample.append(record.sample())

            if len(items) < page_limit:
                break
            offset += page_limit

        self.cursors.touch(stream_id, processed=result.processed)
        if result.processed > 0 and newest is not None:
            result.cursor_advanced = self.cursors.advance_time_cursor(
                stream_id,
                timestamp=newest.timestamp,
                last_id=newest.last_id or None,
            )
            if result.cursor_advanced:
                result.newest_cursor = newest

        logger.info(
            "Activity sync %s pages=%d processed=%d stored=%d advanced=%s",
            stream_id,
            result.pages,
            result.processed,
            result.stored,
            result.cursor_advanced,
        )
        return result

    def peek(self, *, stream_id: str, limit: int = DEFAULT_PEEK_LIMIT) -> ActivityPeek:
        state = self.cursors.require(stream_id, CursorKind.TIME)
        cursor = _cursor_of(state.cursor_timestamp, state.cursor_last_id)
        items = []
        for item in self.source.list_recent(max(1, limit), 0):
            attributes = _attributes(item)
            item_id = str(item.get("id") or "")
            updated_at = _parse_time(attributes.get("updatedAt"))
            items.append(
                {
                    "id": item_id,
                    "parent_id": _parent_id(item),
                    "chapter": attributes.get("chapter"),
                    "lang": attributes.get("translatedLanguage"),
                    "updated_at": attributes.get("updatedAt"),
                    "is_new": (
                        cursor is None
                        or updated_at is None
                        or ActivityCursor(updated_at, item_id) > cursor
                    ),
                },
            )
        return ActivityPeek(stream_id=stream_id, cursor=cursor, items=items)


def _cursor_of(timestamp: datetime | None, last_id: str | None) -> ActivityCursor | None:
    if timestamp is None:
        return None
    return ActivityCursor(timestamp, last_id or "")


def _attributes(item: Mapping[str, Any]) -> Mapping[str, Any]:
    attributes = item.get("attributes")
    return attributes if isinstance(attributes, Mapping) else {}


def _relationship(item: Mapping[str, Any], kind: str) -> Mapping[str, Any] | None:
    for rel in item.get("relationships") or []:
        if isinstance(rel, Mapping) and rel.get("type") == kind:
            return rel
    return None


def _parent_id(item: Mapping[str, Any]) -> str | None:
    rel = _relationship(item, "manga")
    if rel is None:
        return None
    return str(rel.get("id") or "") or None


def _parse_time(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return from_iso(value)
    except ValueError:
        logger.warning("Unparseable activity timestamp %r", value)
        return None


def _to_record(
    item: Mapping[str, Any],
    item_id: str,
    parent_id: str,
    local_parent_id: int | None,
    updated_at: datetime | None,
) -> ActivityRecordWrite:
    attributes = _attributes(item)
    group = _relationship(item, "scanlation_group") or {}
    group_attributes = group.get("attributes") or {}
    return ActivityRecordWrite(
        external_item_id=item_id,
        external_parent_id=parent_id,
        local_parent_id=local_parent_id,
        chapter=attributes.get("chapter"),
        volume=attributes.get("volume"),
        title=attributes.get("title"),
        translated_language=attributes.get("translatedLanguage"),
        group_id=group.get("id"),
        group_name=group_attributes.get("name"),
        remote_updated_at=updated_at,
        remote_readable_at=_parse_time(attributes.get("readableAt")),
        remote_published_at=_parse_time(attributes.get("publishAt")),
        raw_payload={
            "id": item_id,
            "attributes": item.get("attributes"),
            "relationships": item.get("relationships"),
        },
    )
