"""Idempotent ingest procedure for one remote catalog entry."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from catalog_sync.catalog.models import IngestAction, IngestOutcome
from catalog_sync.catalog.normalize import normalize_entry
from catalog_sync.catalog.repository import CatalogRepository
from catalog_sync.config import CatalogSettings

logger = logging.getLogger(__name__)


class CatalogIngestor:
    """Normalize, upsert, enqueue the art job and record the change log."""

    def __init__(self, repository: CatalogRepository, settings: CatalogSettings) -> None:
        self.repository = repository
        self.settings = settings

    def ingest(self, payload: Mapping[str, Any]) -> IngestOutcome:
        entry = normalize_entry(
            payload,
            source=self.settings.source_name,
            cover_base_url=self.settings.cover_base_url,
        )
        result = self.repository.upsert_entry(entry)
        self.repository.enqueue_art_job(result.catalog_entry_id)

        change_logged = False
        if result.action is not IngestAction.UNCHANGED:
            change_logged = self.repository.log_change(
                source=entry.source,
                external_id=entry.external_id,
                catalog_entry_id=result.catalog_entry_id,
                remote_updated_at=entry.remote_updated_at,
                action=result.action,
                changed_fields=result.changed_fields,
            )

        logger.debug(
            "Ingested %s %s as %s (%s)",
            entry.source,
            entry.external_id,
            result.slug,
            result.action.value,
        )
        return IngestOutcome(
            external_id=entry.external_id,
            catalog_entry_id=result.catalog_entry_id,
            slug=result.slug,
            action=result.action,
            changed_fields=sorted(result.changed_fields),
            art_job_enqueued=True,
            change_logged=change_logged,
        )
