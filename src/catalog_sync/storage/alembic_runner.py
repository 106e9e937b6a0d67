"""Programmatic Alembic entry points for the sync database."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory

logger = logging.getLogger(__name__)

# src/catalog_sync/storage -> repository root holding alembic.ini
PROJECT_ROOT = Path(__file__).resolve().parents[3]


def alembic_config(db_path: Path) -> Config:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def head_revision(db_path: Path) -> str | None:
    """Newest revision shipped with the code base."""

    return ScriptDirectory.from_config(alembic_config(db_path)).get_current_head()


def upgrade_head(db_path: Path) -> None:
    """Apply pending migrations to ``db_path``; a database already at head is left as is."""

    logger.debug("Migrating %s to head", db_path)
    command.upgrade(alembic_config(db_path), "head")
