from pathlib import Path

import allure
from sqlalchemy import inspect, text

from catalog_sync.storage.alembic_runner import head_revision
from catalog_sync.storage.database import SyncDatabase

pytestmark = [
    allure.epic("Catalog Sync"),
    allure.feature("Storage"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    database = SyncDatabase(tmp_path / "migrations.db")
    database.init_schema()

    with database.engine.connect() as connection:
        version = connection.execute(
            text("SELECT version_num FROM alembic_version LIMIT 1"),
        ).scalar_one()
        seeded = connection.execute(
            text("SELECT stream_id, kind FROM crawl_cursors ORDER BY stream_id"),
        ).all()
    assert version == head_revision(tmp_path / "migrations.db") == "20261012_0002"
    assert [tuple(row) for row in seeded] == [
        ("activity_chapter_feed", "time"),
        ("catalog_seed", "offset"),
        ("recent_chapters", "time"),
    ]

    tables = set(inspect(database.engine).get_table_names())
    assert {
        "activity_records",
        "art_jobs",
        "catalog_change_log",
        "catalog_entries",
        "crawl_cursors",
        "queue_items",
        "sync_runs",
    } <= tables
    database.close()


def test_init_schema_is_idempotent(tmp_path: Path) -> None:
    database = SyncDatabase(tmp_path / "nested" / "again.db")
    database.init_schema()
    database.init_schema()

    with database.engine.connect() as connection:
        cursors = connection.execute(text("SELECT COUNT(*) FROM crawl_cursors")).scalar_one()
    assert cursors == 3
    database.close()
