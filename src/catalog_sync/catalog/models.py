"""Domain models for the remote catalog and local catalog entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class IngestAction(str, Enum):
    """Outcome of a catalog entry upsert."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class ArtJobStatus(str, Enum):
    """Lifecycle states for dependent artwork jobs."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


@dataclass(slots=True)
class CatalogPage:
    """One page of the remote catalog listing with pagination metadata."""

    items: list[dict[str, Any]]
    limit: int
    offset: int
    total: int | None


@dataclass(slots=True)
class Creator:
    """Author or artist attached to a catalog entry."""

    external_id: str
    name: str


@dataclass(slots=True)
class NormalizedEntry:
    """Catalog entry ready for persistence."""

    source: str
    external_id: str
    slug: str
    title: str
    title_english: str | None
    title_native: str | None
    title_preferred: str | None
    description: str | None
    status: str | None
    publication_year: int | None
    genres: list[str]
    themes: list[str]
    authors: list[Creator] = field(default_factory=list)
    artists: list[Creator] = field(default_factory=list)
    cover_candidates: list[str] = field(default_factory=list)
    remote_updated_at: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def merged_genres(self) -> list[str]:
        return sorted(set(self.genres) | set(self.themes))

    @property
    def cover_image_url(self) -> str | None:
        return self.cover_candidates[0] if self.cover_candidates else None


@dataclass(slots=True)
class UpsertEntryResult:
    """Local id, action and changed fields after a catalog upsert."""

    catalog_entry_id: int
    slug: str
    action: IngestAction
    changed_fields: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass(slots=True)
class IngestOutcome:
    """Result of the full ingest procedure for one remote entry."""

    external_id: str
    catalog_entry_id: int
    slug: str
    action: IngestAction
    changed_fields: list[str]
    art_job_enqueued: bool
    change_logged: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "external_id": self.external_id,
            "catalog_entry_id": self.catalog_entry_id,
            "slug": self.slug,
            "action": self.action.value,
            "changed_fields": list(self.changed_fields),
            "art_job_enqueued": self.art_job_enqueued,
            "change_logged": self.change_logged,
        }
