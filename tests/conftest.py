"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from catalog_sync.catalog.models import CatalogPage
from catalog_sync.config import Settings
from catalog_sync.errors import RemoteServiceError
from catalog_sync.storage.database import SyncDatabase
from catalog_sync.sync.steps import PipelineSteps


def _manga_payload(
    external_id: str,
    *,
    title: str | None = None,
    updated_at: str = "2026-10-01T00:00:00+00:00",
    status: str = "ongoing",
    tags: list[tuple[str, str]] | None = None,
) -> dict[str, Any]:
    return {
        "id": external_id,
        "type": "manga",
        "attributes": {
            "title": {"en": title or f"Series {external_id}"},
            "altTitles": [],
            "description": {"en": f"About {external_id}"},
            "status": status,
            "year": 2020,
            "updatedAt": updated_at,
            "tags": [
                {"id": f"tag-{name}", "attributes": {"name": {"en": name}, "group": group}}
                for name, group in (tags or [])
            ],
        },
        "relationships": [],
    }


def _chapter_payload(
    external_id: str,
    parent_id: str | None,
    updated_at: str | None,
    *,
    chapter: str = "1",
    lang: str = "en",
) -> dict[str, Any]:
    relationships: list[dict[str, Any]] = [
        {"id": "group-1", "type": "scanlation_group", "attributes": {"name": "Group One"}},
    ]
    if parent_id is not None:
        relationships.append({"id": parent_id, "type": "manga"})
    attributes: dict[str, Any] = {
        "chapter": chapter,
        "volume": None,
        "title": None,
        "translatedLanguage": lang,
        "readableAt": updated_at,
        "publishAt": updated_at,
    }
    if updated_at is not None:
        attributes["updatedAt"] = updated_at
    return {
        "id": external_id,
        "type": "chapter",
        "attributes": attributes,
        "relationships": relationships,
    }


class FakeCatalogSource:
    """In-memory catalog: ``entries`` for the listing, ``feed`` sorted newest first."""

    def __init__(
        self,
        *,
        entries: list[dict[str, Any]] | None = None,
        feed: list[dict[str, Any]] | None = None,
        total: int | None = None,
    ) -> None:
        self.entries = list(entries or [])
        self.feed = list(feed or [])
        self.total = total
        self.entry_errors: dict[str, Exception] = {}
        self.page_calls: list[tuple[int, int]] = []
        self.recent_calls: list[tuple[int, int, str | None]] = []

    def list_page(self, limit: int, offset: int) -> CatalogPage:
        self.page_calls.append((limit, offset))
        total = self.total if self.total is not None else len(self.entries)
        return CatalogPage(
            items=self.entries[offset : offset + limit],
            limit=limit,
            offset=offset,
            total=total,
        )

    def list_recent(
        self,
        limit: int,
        offset: int,
        *,
        parent_external_id: str | None = None,
    ) -> list[dict[str, Any]]:
        self.recent_calls.append((limit, offset, parent_external_id))
        items = self.feed
        if parent_external_id is not None:
            items = [
                item
                for item in items
                if any(
                    rel.get("type") == "manga" and rel.get("id") == parent_external_id
                    for rel in item.get("relationships") or []
                )
            ]
        return items[offset : offset + limit]

    def get_entry(self, external_id: str) -> dict[str, Any]:
        if external_id in self.entry_errors:
            raise self.entry_errors[external_id]
        for entry in self.entries:
            if entry["id"] == external_id:
                return entry
        raise RemoteServiceError(
            message=f"Catalog service /manga/{external_id} failed: 404",
            status_code=404,
            code="http_status",
        )


@pytest.fixture()
def database(tmp_path: Path) -> Iterator[SyncDatabase]:
    db = SyncDatabase(tmp_path / "catalog-sync.db")
    db.init_schema()
    yield db
    db.close()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(db_path=tmp_path / "catalog-sync.db")


@pytest.fixture()
def fake_source() -> FakeCatalogSource:
    return FakeCatalogSource()


@pytest.fixture()
def steps(settings: Settings, fake_source: FakeCatalogSource) -> Iterator[PipelineSteps]:
    database = SyncDatabase(settings.db_path)
    database.init_schema()
    pipeline = PipelineSteps(settings=settings, database=database, source=fake_source)
    yield pipeline
    pipeline.close()


@pytest.fixture()
def make_manga() -> Callable[..., dict[str, Any]]:
    """Builder for remote catalog entry payloads."""
    return _manga_payload


@pytest.fixture()
def make_chapter() -> Callable[..., dict[str, Any]]:
    """Builder for remote activity feed items."""
    return _chapter_payload


@pytest.fixture()
def make_source() -> type[FakeCatalogSource]:
    return FakeCatalogSource
