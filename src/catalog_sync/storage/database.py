"""Shared SQLite database handle for the per-table repositories."""

from __future__ import annotations

from pathlib import Path

from catalog_sync.storage.alembic_runner import upgrade_head
from catalog_sync.storage.common import DEFAULT_BUSY_TIMEOUT_MS, build_sqlite_engine


class SyncDatabase:
    """Owns the SQLAlchemy engine that every repository of one database shares."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def init_schema(self) -> None:
        """Apply migrations up to head."""

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        upgrade_head(self.db_path)

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> SyncDatabase:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
