"""CLI entrypoint for catalog-sync."""

import logging
import os
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from catalog_sync import __version__
from catalog_sync.controllers import (
    ActivityPeekCommand,
    ActivitySyncCommand,
    CrawlStepCommand,
    CursorBootstrapCommand,
    QueueHealthCommand,
    QueueListCommand,
    QueueProcessCommand,
    SyncCliController,
)
from catalog_sync.crawl.cursors import MAX_PAGE_SIZE
from catalog_sync.errors import PipelineError
from catalog_sync.workqueue.models import QueueItemStatus

click.rich_click.USE_MARKDOWN = True
CONTROLLER = SyncCliController()
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)


@click.group()
@click.version_option(version=__version__, prog_name="catalog-sync")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=lambda: os.getenv("CATALOG_SYNC_LOG_LEVEL", "WARNING").upper(),
    show_default="CATALOG_SYNC_LOG_LEVEL or WARNING",
    help="Root logger level.",
)
def catalog_sync(log_level: str) -> None:
    """Catalog synchronization pipeline CLI."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@catalog_sync.group()
def crawl() -> None:
    """Offset crawl over the remote catalog."""


@crawl.command("step")
@db_path_option
@click.option("--limit", type=int, default=None, help="Max items to ingest (clamped to 1-200).")
@click.option(
    "--page-limit",
    type=int,
    default=None,
    help="Remote page size override (clamped to 25-100). Defaults to the stream page size.",
)
@click.option("--stream-id", default=None, help="Offset stream to advance.")
def crawl_step(
    db_path: Path | None,
    limit: int | None,
    page_limit: int | None,
    stream_id: str | None,
) -> None:
    """Fetch one page at the persisted offset and ingest it."""

    _run(
        lambda: CONTROLLER.crawl_step(
            CrawlStepCommand(
                db_path=db_path,
                limit=limit,
                page_limit=page_limit,
                stream_id=stream_id,
            ),
        ),
    )


@catalog_sync.group()
def activity() -> None:
    """Incremental activity feed mirror."""


@activity.command("sync")
@db_path_option
@click.option("--stream-id", default=None, help="Time+id stream to scan.")
@click.option("--max-pages", type=int, default=None, help="Page bound (clamped to 1-25).")
@click.option("--hard-cap", type=int, default=None, help="Item bound (clamped to 1-5000).")
@click.option("--force", is_flag=True, help="Ignore the persisted cursor stop rule.")
def activity_sync(
    db_path: Path | None,
    stream_id: str | None,
    max_pages: int | None,
    hard_cap: int | None,
    force: bool,
) -> None:
    """Scan the activity feed until already-seen items."""

    _run(
        lambda: CONTROLLER.activity_sync(
            ActivitySyncCommand(
                db_path=db_path,
                stream_id=stream_id,
                max_pages=max_pages,
                hard_cap=hard_cap,
                force=force,
            ),
        ),
    )


@activity.command("peek")
@db_path_option
@click.option("--stream-id", default=None, help="Stream whose cursor is compared.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=100),
    default=10,
    show_default=True,
    help="Newest remote items to show.",
)
def activity_peek(db_path: Path | None, stream_id: str | None, limit: int) -> None:
    """Show newest remote activity next to the persisted cursor without writing."""

    _run(
        lambda: CONTROLLER.activity_peek(
            ActivityPeekCommand(db_path=db_path, stream_id=stream_id, limit=limit),
        ),
    )


@catalog_sync.group()
def queue() -> None:
    """Work queue commands."""


@queue.command("process")
@db_path_option
@click.option("--window", type=int, default=None, help="Recent activity rows (clamped 50-500).")
@click.option("--batch", type=int, default=None, help="Items to claim (clamped 1-50).")
@click.option("--lock-seconds", type=int, default=None, help="Lease length (clamped 30-600).")
def queue_process(
    db_path: Path | None,
    window: int | None,
    batch: int | None,
    lock_seconds: int | None,
) -> None:
    """Enqueue recent activity, then claim and process one bounded batch."""

    _run(
        lambda: CONTROLLER.process_queue(
            QueueProcessCommand(
                db_path=db_path,
                window=window,
                batch=batch,
                lock_seconds=lock_seconds,
            ),
        ),
    )


@queue.command("health")
@db_path_option
@click.option("--sample", type=int, default=None, help="Sample size (clamped 5-100).")
@click.option(
    "--stuck-minutes",
    type=int,
    default=None,
    help="Staleness threshold for pending rows (clamped 1-1440).",
)
def queue_health(db_path: Path | None, sample: int | None, stuck_minutes: int | None) -> None:
    """Show queue histogram, backlog, stuck leases and recent samples."""

    _run(
        lambda: CONTROLLER.queue_health(
            QueueHealthCommand(db_path=db_path, sample=sample, stuck_minutes=stuck_minutes),
        ),
    )


@queue.command("list")
@db_path_option
@click.option(
    "--status",
    type=click.Choice([status.value for status in QueueItemStatus]),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=50,
    show_default=True,
    help="Max rows to print.",
)
def queue_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List queue rows, most recently updated first."""

    _run(
        lambda: CONTROLLER.list_queue(
            QueueListCommand(db_path=db_path, status=status, limit=limit),
        ),
    )


@catalog_sync.group()
def pipeline() -> None:
    """Composite pipeline commands."""


@pipeline.command("run")
@db_path_option
def pipeline_run(db_path: Path | None) -> None:
    """Activity sync on the main stream followed by one queue run."""

    _run(lambda: CONTROLLER.run_pipeline(db_path))


@catalog_sync.group()
def runs() -> None:
    """Recorded step runs."""


@runs.command("list")
@db_path_option
@click.option(
    "--limit",
    type=int,
    default=60,
    show_default=True,
    help="Runs to show (clamped 10-200).",
)
def runs_list(db_path: Path | None, limit: int) -> None:
    """Show the most recent step runs."""

    _run(lambda: CONTROLLER.list_runs(db_path, limit))


@catalog_sync.group()
def cursors() -> None:
    """Crawl stream cursors."""


@cursors.command("list")
@db_path_option
def cursors_list(db_path: Path | None) -> None:
    """Show every persisted stream cursor."""

    _run(lambda: CONTROLLER.list_cursors(db_path))


@cursors.command("bootstrap")
@db_path_option
@click.option("--stream-id", required=True, help="Stream to create.")
@click.option(
    "--kind",
    type=click.Choice(["offset", "time"]),
    default="time",
    show_default=True,
    help="Pagination style of the stream.",
)
@click.option(
    "--page-size",
    type=click.IntRange(min=1, max=MAX_PAGE_SIZE),
    default=100,
    show_default=True,
    help="Remote page size for the stream.",
)
def cursors_bootstrap(db_path: Path | None, stream_id: str, kind: str, page_size: int) -> None:
    """Create a stream cursor if it does not exist yet."""

    _run(
        lambda: CONTROLLER.bootstrap_cursor(
            CursorBootstrapCommand(
                db_path=db_path,
                stream_id=stream_id,
                kind=kind,
                page_size=page_size,
            ),
        ),
    )


@catalog_sync.command("serve")
@click.option("--host", default=None, help="Bind host. Defaults to CATALOG_SYNC_HOST.")
@click.option("--port", type=int, default=None, help="Bind port. Defaults to CATALOG_SYNC_PORT.")
@db_path_option
def serve(host: str | None, port: int | None, db_path: Path | None) -> None:
    """Serve the HTTP trigger endpoints with uvicorn."""

    import uvicorn

    from catalog_sync.api.app import create_app
    from catalog_sync.config import Settings

    settings = Settings.from_env(db_path=db_path)
    uvicorn.run(
        create_app(settings),
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_level=settings.log_level.lower(),
    )


def _run(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except PipelineError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    catalog_sync()
