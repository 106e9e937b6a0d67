from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import allure
import pytest

from catalog_sync.catalog.ingest import CatalogIngestor
from catalog_sync.catalog.repository import CatalogRepository
from catalog_sync.config import CatalogSettings
from catalog_sync.crawl.crawler import CrawlCursorManager
from catalog_sync.crawl.cursors import CursorRepository
from catalog_sync.crawl.models import CursorKind
from catalog_sync.errors import CursorKindMismatchError, CursorNotFoundError
from catalog_sync.storage.database import SyncDatabase

MangaFactory = Callable[..., dict[str, Any]]

pytestmark = [
    allure.epic("Catalog Sync"),
    allure.feature("Crawl Cursor Manager"),
]


def _manager(
    database: SyncDatabase,
    source: Any,
    *,
    stream_id: str = "catalog_seed",
) -> CrawlCursorManager:
    catalog = CatalogRepository(database.engine)
    return CrawlCursorManager(
        source=source,
        cursors=CursorRepository(database.engine),
        ingestor=CatalogIngestor(catalog, CatalogSettings()),
        stream_id=stream_id,
    )


def test_offset_cursor_wraps_to_zero_at_remote_total(
    database: SyncDatabase,
    make_source: Any,
    make_manga: MangaFactory,
) -> None:
    source = make_source(entries=[make_manga(f"md-{index}") for index in range(57)])
    cursors = CursorRepository(database.engine)
    cursors.ensure_stream("seed_small", CursorKind.OFFSET, page_size=25)
    manager = _manager(database, source, stream_id="seed_small")

    offsets = []
    for _ in range(4):
        result = manager.step(100)
        offsets.append((result.offset, result.next_offset, result.wrapped))

    assert offsets == [
        (0, 25, False),
        (25, 50, False),
        (50, 0, True),
        (0, 25, False),
    ]
    assert source.page_calls == [(25, 0), (25, 25), (25, 50), (25, 0)]
    cursor = cursors.require("seed_small")
    assert cursor.cursor_offset == 25
    assert cursor.total == 57
    assert cursor.processed_count == 25 + 25 + 7 + 25


def test_explicit_page_limit_overrides_stream_page_size(
    database: SyncDatabase,
    make_source: Any,
    make_manga: MangaFactory,
) -> None:
    source = make_source(entries=[make_manga(f"md-{index}") for index in range(10)])
    manager = _manager(database, source)

    result = manager.step(5, page_limit=4)

    assert source.page_calls == [(4, 0)]
    assert result.next_offset == 4
    assert len(result.processed) == 4


def test_batch_limit_caps_ingest_but_cursor_moves_by_page(
    database: SyncDatabase,
    make_source: Any,
    make_manga: MangaFactory,
) -> None:
    source = make_source(entries=[make_manga(f"md-{index}") for index in range(30)])
    manager = _manager(database, source)

    result = manager.step(3, page_limit=10)

    assert [item["external_id"] for item in result.processed] == ["md-0", "md-1", "md-2"]
    assert result.fetched == 10
    assert result.next_offset == 10


def test_item_failure_is_recorded_and_does_not_stop_the_page(
    database: SyncDatabase,
    make_source: Any,
    make_manga: MangaFactory,
) -> None:
    entries = [make_manga("md-1"), {"attributes": {}}, make_manga("md-3")]
    source = make_source(entries=entries, total=100)
    manager = _manager(database, source)

    result = manager.step(10, page_limit=3)
    payload = result.as_dict()

    assert payload["processed_count"] == 2
    assert payload["errors"] == [{"id": None, "error": "Remote catalog entry has no id"}]
    assert payload["next_offset"] == 3
    assert payload["wrapped"] is False
    assert CursorRepository(database.engine).require("catalog_seed").cursor_offset == 3


def test_crawl_ingest_is_idempotent_across_wrap(
    database: SyncDatabase,
    make_source: Any,
    make_manga: MangaFactory,
) -> None:
    source = make_source(entries=[make_manga("md-1"), make_manga("md-2")])
    manager = _manager(database, source)

    first = manager.step(10, page_limit=5)
    second = manager.step(10, page_limit=5)

    assert first.wrapped is True
    assert [item["action"] for item in first.processed] == ["inserted", "inserted"]
    assert [item["action"] for item in second.processed] == ["unchanged", "unchanged"]


def test_missing_cursor_raises(database: SyncDatabase, make_source: Any) -> None:
    manager = _manager(database, make_source(), stream_id="never_bootstrapped")

    with pytest.raises(CursorNotFoundError, match='stream_id="never_bootstrapped"'):
        manager.step(10)


def test_crawl_rejects_time_stream_and_leaves_it_unchanged(
    database: SyncDatabase,
    make_source: Any,
    make_manga: MangaFactory,
) -> None:
    cursors = CursorRepository(database.engine)
    before = cursors.require("recent_chapters")
    source = make_source(entries=[make_manga("md-1")])
    manager = _manager(database, source, stream_id="recent_chapters")

    with pytest.raises(CursorKindMismatchError, match="kind=time, expected kind=offset"):
        manager.step(10)

    assert source.page_calls == []
    assert cursors.require("recent_chapters") == before


@pytest.mark.parametrize("page_size", [0, 101])
def test_ensure_stream_rejects_page_size_outside_remote_bounds(
    database: SyncDatabase,
    page_size: int,
) -> None:
    cursors = CursorRepository(database.engine)

    with pytest.raises(ValueError, match="page_size"):
        cursors.ensure_stream("too_wide", CursorKind.TIME, page_size=page_size)
    assert cursors.get("too_wide") is None


def test_ensure_stream_does_not_reset_existing_cursor(database: SyncDatabase) -> None:
    cursors = CursorRepository(database.engine)
    cursors.save_offset("catalog_seed", offset=40, total=90, processed=5)

    view = cursors.ensure_stream("catalog_seed", CursorKind.OFFSET, page_size=10)

    assert view.cursor_offset == 40
    assert view.page_size == 100
    assert view.processed_count == 5


def test_time_cursor_only_moves_forward(database: SyncDatabase) -> None:
    cursors = CursorRepository(database.engine)
    t4 = datetime(2026, 10, 1, 4, tzinfo=UTC)
    t5 = datetime(2026, 10, 1, 5, tzinfo=UTC)

    assert cursors.advance_time_cursor("recent_chapters", timestamp=t4, last_id="c4")
    assert cursors.advance_time_cursor("recent_chapters", timestamp=t4, last_id="c5")
    assert not cursors.advance_time_cursor("recent_chapters", timestamp=t4, last_id="c1")
    assert cursors.advance_time_cursor("recent_chapters", timestamp=t5, last_id="a")
    assert not cursors.advance_time_cursor("recent_chapters", timestamp=t4, last_id="z")

    cursor = cursors.require("recent_chapters")
    assert cursor.cursor_timestamp == t5
    assert cursor.cursor_last_id == "a"


def test_seeded_streams_exist_after_migration(database: SyncDatabase) -> None:
    streams = {view.stream_id: view.kind for view in CursorRepository(database.engine).list_all()}

    assert streams == {
        "activity_chapter_feed": CursorKind.TIME,
        "catalog_seed": CursorKind.OFFSET,
        "recent_chapters": CursorKind.TIME,
    }
