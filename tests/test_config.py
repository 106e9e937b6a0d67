from __future__ import annotations

from pathlib import Path

import allure
import pytest

from catalog_sync.config import ActivitySettings, CatalogSettings, QueueSettings, Settings
from catalog_sync.errors import ConfigurationError

pytestmark = [
    allure.epic("Catalog Sync"),
    allure.feature("Configuration"),
]


def test_defaults_are_valid() -> None:
    settings = Settings()

    settings.validate()
    assert settings.queue.retry_delay_seconds == 300
    assert settings.activity.stream_id == "recent_chapters"
    assert settings.crawl.stream_id == "catalog_seed"


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CATALOG_SYNC_DB_PATH", "/tmp/custom.db")
    monkeypatch.setenv("CATALOG_SYNC_QUEUE_BATCH", "7")
    monkeypatch.setenv("CATALOG_SYNC_ACTIVITY_MAX_PAGES", "3")
    monkeypatch.setenv("CATALOG_SYNC_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.db_path == Path("/tmp/custom.db")
    assert settings.queue.batch_size == 7
    assert settings.activity.max_pages == 3
    assert settings.log_level == "DEBUG"


def test_explicit_db_path_wins_over_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CATALOG_SYNC_DB_PATH", "/tmp/ignored.db")

    assert Settings.from_env(db_path=tmp_path / "x.db").db_path == tmp_path / "x.db"


def test_secrets_fall_back_to_unprefixed_names(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CATALOG_SYNC_ADMIN_SECRET", raising=False)
    monkeypatch.setenv("ADMIN_SECRET", "plain-admin")
    monkeypatch.setenv("CATALOG_SYNC_CRON_TOKEN", "prefixed-cron")
    monkeypatch.setenv("CRON_TOKEN", "plain-cron")

    settings = Settings.from_env()

    assert settings.api.admin_secret == "plain-admin"
    assert settings.api.cron_token == "prefixed-cron"


def test_blank_secret_is_treated_as_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CATALOG_SYNC_ADMIN_SECRET", "   ")
    monkeypatch.delenv("ADMIN_SECRET", raising=False)

    assert Settings.from_env().api.admin_secret is None


def test_validate_rejects_relative_base_url() -> None:
    settings = Settings(catalog=CatalogSettings(base_url="api.mangadex.org"))

    with pytest.raises(ConfigurationError, match="Invalid catalog base URL"):
        settings.validate()


def test_validate_rejects_non_positive_bounds() -> None:
    settings = Settings(queue=QueueSettings(lease_seconds=0))

    with pytest.raises(ConfigurationError, match="CATALOG_SYNC_QUEUE_LEASE_SECONDS"):
        settings.validate()


def test_validate_rejects_shared_activity_streams() -> None:
    settings = Settings(
        activity=ActivitySettings(stream_id="recent_chapters", scoped_stream_id="recent_chapters"),
    )

    with pytest.raises(ConfigurationError, match="Scoped activity stream"):
        settings.validate()
