"""Offset-cursor crawl over the paginated remote catalog listing."""

from __future__ import annotations

import logging

from catalog_sync.catalog.client import CatalogSource
from catalog_sync.catalog.ingest import CatalogIngestor
from catalog_sync.crawl.cursors import CursorRepository
from catalog_sync.crawl.models import CrawlItemError, CrawlStepResult, CursorKind

logger = logging.getLogger(__name__)


class CrawlCursorManager:
    """Walks one offset stream page by page, wrapping to zero at the remote total."""

    def __init__(
        self,
        *,
        source: CatalogSource,
        cursors: CursorRepository,
        ingestor: CatalogIngestor,
        stream_id: str = "catalog_seed",
    ) -> None:
        self.source = source
        self.cursors = cursors
        self.ingestor = ingestor
        self.stream_id = stream_id

    def step(self, batch_limit: int, *, page_limit: int | None = None) -> CrawlStepResult:
        """Fetch the page at the persisted offset and ingest up to ``batch_limit`` items.

        The cursor advances by the page limit regardless of per-item failures;
        the next wrap-around is the retry for anything that failed here.
        """

        if batch_limit <= 0:
            raise ValueError("batch_limit must be > 0")
        cursor = self.cursors.require(self.stream_id, CursorKind.OFFSET)
        effective_page_limit = page_limit or cursor.page_size
        offset = cursor.cursor_offset

        page = self.source.list_page(effective_page_limit, offset)

        result = CrawlStepResult(
            stream_id=self.stream_id,
            offset=offset,
            page_limit=page.limit,
            total=page.total,
            fetched=len(page.items),
            next_offset=offset,
            wrapped=False,
        )
        for item in page.items[:batch_limit]:
            external_id = str(item.get("id") or "") or None
            try:
                outcome = self.ingestor.ingest(item)
            except Exception as error:  # noqa: BLE001
                logger.warning("Crawl ingest failed for %s: %s", external_id, error)
                result.errors.append(CrawlItemError(external_id=external_id, error=str(error)))
                continue
            result.processed.append(outcome.as_dict())

        next_offset = offset + (page.limit or effective_page_limit)
        if page.total is not None and page.total > 0 and next_offset >= page.total:
            next_offset = 0
            result.wrapped = True
        result.next_offset = next_offset

        self.cursors.save_offset(
            self.stream_id,
            offset=next_offset,
            total=page.total,
            processed=len(result.processed),
        )
        logger.info(
            "Crawl step %s offset=%d next=%d processed=%d errors=%d",
            self.stream_id,
            offset,
            next_offset,
            len(result.processed),
            len(result.errors),
        )
        return result
