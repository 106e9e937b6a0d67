"""Runtime configuration for the catalog synchronization pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from catalog_sync.errors import ConfigurationError

DEFAULT_DB_PATH = ".catalog_sync.db"
DEFAULT_CATALOG_BASE_URL = "https://api.mangadex.org"
DEFAULT_COVER_BASE_URL = "https://uploads.mangadex.org/covers"


@dataclass(slots=True)
class CatalogSettings:
    """Remote catalog service client settings."""

    base_url: str = DEFAULT_CATALOG_BASE_URL
    cover_base_url: str = DEFAULT_COVER_BASE_URL
    source_name: str = "mangadex"
    user_agent: str = "catalog-sync/0.3 (+https://github.com/catalog-sync)"
    request_timeout_seconds: float = 20.0
    max_retries: int = 3


@dataclass(slots=True)
class CrawlSettings:
    """Offset crawl defaults."""

    stream_id: str = "catalog_seed"
    run_limit: int = 50
    page_limit: int = 100


@dataclass(slots=True)
class ActivitySettings:
    """Activity feed tracking defaults."""

    stream_id: str = "recent_chapters"
    scoped_stream_id: str = "activity_chapter_feed"
    max_pages: int = 5
    hard_cap: int = 500
    sample_size: int = 25


@dataclass(slots=True)
class QueueSettings:
    """Work queue defaults."""

    enqueue_window: int = 300
    batch_size: int = 15
    lease_seconds: int = 180
    retry_delay_seconds: int = 300


@dataclass(slots=True)
class HealthSettings:
    """Queue health report defaults."""

    sample: int = 25
    stuck_minutes: int = 30


@dataclass(slots=True)
class ApiSettings:
    """Trigger surface secrets and server binding."""

    admin_secret: str | None = None
    cron_token: str | None = None
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class Settings:
    """Application settings grouped by pipeline component."""

    db_path: Path = Path(DEFAULT_DB_PATH)
    log_level: str = "WARNING"
    catalog: CatalogSettings = field(default_factory=CatalogSettings)
    crawl: CrawlSettings = field(default_factory=CrawlSettings)
    activity: ActivitySettings = field(default_factory=ActivitySettings)
    queue: QueueSettings = field(default_factory=QueueSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    api: ApiSettings = field(default_factory=ApiSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("CATALOG_SYNC_DB_PATH", DEFAULT_DB_PATH)),
            log_level=os.getenv("CATALOG_SYNC_LOG_LEVEL", "WARNING").upper(),
            catalog=CatalogSettings(
                base_url=os.getenv("CATALOG_SYNC_CATALOG_BASE_URL", DEFAULT_CATALOG_BASE_URL),
                cover_base_url=os.getenv(
                    "CATALOG_SYNC_COVER_BASE_URL",
                    DEFAULT_COVER_BASE_URL,
                ),
                user_agent=os.getenv(
                    "CATALOG_SYNC_USER_AGENT",
                    "catalog-sync/0.3 (+https://github.com/catalog-sync)",
                ),
                request_timeout_seconds=float(
                    os.getenv("CATALOG_SYNC_REQUEST_TIMEOUT_SECONDS", "20.0"),
                ),
                max_retries=int(os.getenv("CATALOG_SYNC_MAX_RETRIES", "3")),
            ),
            crawl=CrawlSettings(
                stream_id=os.getenv("CATALOG_SYNC_CRAWL_STREAM_ID", "catalog_seed"),
                run_limit=int(os.getenv("CATALOG_SYNC_CRAWL_RUN_LIMIT", "50")),
                page_limit=int(os.getenv("CATALOG_SYNC_CRAWL_PAGE_LIMIT", "100")),
            ),
            activity=ActivitySettings(
                stream_id=os.getenv("CATALOG_SYNC_ACTIVITY_STREAM_ID", "recent_chapters"),
                scoped_stream_id=os.getenv(
                    "CATALOG_SYNC_ACTIVITY_SCOPED_STREAM_ID",
                    "activity_chapter_feed",
                ),
                max_pages=int(os.getenv("CATALOG_SYNC_ACTIVITY_MAX_PAGES", "5")),
                hard_cap=int(os.getenv("CATALOG_SYNC_ACTIVITY_HARD_CAP", "500")),
            ),
            queue=QueueSettings(
                enqueue_window=int(os.getenv("CATALOG_SYNC_QUEUE_WINDOW", "300")),
                batch_size=int(os.getenv("CATALOG_SYNC_QUEUE_BATCH", "15")),
                lease_seconds=int(os.getenv("CATALOG_SYNC_QUEUE_LEASE_SECONDS", "180")),
                retry_delay_seconds=int(
                    os.getenv("CATALOG_SYNC_QUEUE_RETRY_DELAY_SECONDS", "300"),
                ),
            ),
            health=HealthSettings(
                sample=int(os.getenv("CATALOG_SYNC_HEALTH_SAMPLE", "25")),
                stuck_minutes=int(os.getenv("CATALOG_SYNC_HEALTH_STUCK_MINUTES", "30")),
            ),
            api=ApiSettings(
                admin_secret=_first_env("CATALOG_SYNC_ADMIN_SECRET", "ADMIN_SECRET"),
                cron_token=_first_env("CATALOG_SYNC_CRON_TOKEN", "CRON_TOKEN"),
                host=os.getenv("CATALOG_SYNC_HOST", "127.0.0.1"),
                port=int(os.getenv("CATALOG_SYNC_PORT", "8000")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the pipeline cannot run with."""

        parsed = urlparse(self.catalog.base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConfigurationError(
                "Invalid catalog base URL: "
                f"{self.catalog.base_url!r}. Expected an absolute http:// or https:// URL.",
            )
        if self.catalog.request_timeout_seconds <= 0:
            raise ConfigurationError("CATALOG_SYNC_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.catalog.max_retries < 0:
            raise ConfigurationError("CATALOG_SYNC_MAX_RETRIES must be >= 0.")
        for name, value in (
            ("CATALOG_SYNC_CRAWL_RUN_LIMIT", self.crawl.run_limit),
            ("CATALOG_SYNC_CRAWL_PAGE_LIMIT", self.crawl.page_limit),
            ("CATALOG_SYNC_ACTIVITY_MAX_PAGES", self.activity.max_pages),
            ("CATALOG_SYNC_ACTIVITY_HARD_CAP", self.activity.hard_cap),
            ("CATALOG_SYNC_QUEUE_WINDOW", self.queue.enqueue_window),
            ("CATALOG_SYNC_QUEUE_BATCH", self.queue.batch_size),
            ("CATALOG_SYNC_QUEUE_LEASE_SECONDS", self.queue.lease_seconds),
            ("CATALOG_SYNC_QUEUE_RETRY_DELAY_SECONDS", self.queue.retry_delay_seconds),
            ("CATALOG_SYNC_HEALTH_SAMPLE", self.health.sample),
            ("CATALOG_SYNC_HEALTH_STUCK_MINUTES", self.health.stuck_minutes),
        ):
            if value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer.")
        if self.activity.stream_id == self.activity.scoped_stream_id:
            raise ConfigurationError(
                "Scoped activity stream must differ from the main activity stream "
                f"({self.activity.stream_id!r}).",
            )


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None
