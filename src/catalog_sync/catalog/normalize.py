"""Normalization of raw remote catalog payloads into local entry fields."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from catalog_sync.catalog.models import Creator, NormalizedEntry

COVER_SIZES = ("original", "1024", "512", "256")
NATIVE_LANGS = ("ja", "jp")

_QUOTES_RE = re.compile(r"['\"]")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")
_DASH_RUN_RE = re.compile(r"-+")


def pick_lang(
    values: Mapping[str, str] | None,
    preferred: Sequence[str] = ("en",),
) -> str | None:
    """Return the first preferred localized value, falling back to the first entry."""

    if not values:
        return None
    for lang in preferred:
        value = values.get(lang)
        if value:
            return value
    for value in values.values():
        return value or None
    return None


def slugify(value: str | None) -> str:
    text = (value or "").lower().strip()
    text = _QUOTES_RE.sub("", text)
    text = _NON_SLUG_RE.sub("-", text)
    text = _DASH_RUN_RE.sub("-", text).strip("-")
    return text or "untitled"


def normalize_titles(attributes: Mapping[str, Any]) -> dict[str, str | None]:
    titles = attributes.get("title") or {}
    title_en = _pick_exact(titles, ("en",))
    title_native = _pick_exact(titles, NATIVE_LANGS)
    title_any = title_en or title_native or pick_lang(titles, ())

    alt_en = None
    for alt in attributes.get("altTitles") or []:
        if isinstance(alt, Mapping) and alt.get("en"):
            alt_en = alt["en"]
            break

    preferred = title_en or alt_en or title_any or title_native
    return {
        "title": title_any or preferred or "Untitled",
        "title_english": title_en or alt_en,
        "title_native": title_native,
        "title_preferred": preferred,
    }


def normalize_description(attributes: Mapping[str, Any]) -> str | None:
    descriptions = attributes.get("description") or {}
    return (
        _pick_exact(descriptions, ("en",))
        or _pick_exact(descriptions, NATIVE_LANGS)
        or pick_lang(descriptions, ())
    )


def normalize_status(attributes: Mapping[str, Any]) -> str | None:
    status = str(attributes.get("status") or "").lower().strip()
    return status or None


def split_tags(attributes: Mapping[str, Any]) -> tuple[list[str], list[str]]:
    """Split remote tags into sorted, de-duplicated genre and theme names.

    Tags outside the ``genre`` and ``theme`` groups are ignored.
    """

    genres: set[str] = set()
    themes: set[str] = set()
    for tag in attributes.get("tags") or []:
        tag_attributes = tag.get("attributes") or {}
        group = str(tag_attributes.get("group") or "").lower()
        names = tag_attributes.get("name") or {}
        name = _pick_exact(names, ("en",)) or pick_lang(names, ())
        if not name:
            continue
        if group == "genre":
            genres.add(name)
        elif group == "theme":
            themes.add(name)
    return sorted(genres), sorted(themes)


def creators(relationships: Iterable[Mapping[str, Any]], kind: str) -> list[Creator]:
    """Collect named creators of one relationship kind, unique by case-insensitive name."""

    seen: set[str] = set()
    result: list[Creator] = []
    for rel in relationships:
        if rel.get("type") != kind:
            continue
        name = str((rel.get("attributes") or {}).get("name") or "").strip()
        key = name.lower()
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(Creator(external_id=str(rel.get("id") or ""), name=name))
    return result


def cover_candidates(
    entry_id: str,
    relationships: Iterable[Mapping[str, Any]],
    *,
    base_url: str,
) -> list[str]:
    for rel in relationships:
        if rel.get("type") != "cover_art":
            continue
        file_name = (rel.get("attributes") or {}).get("fileName")
        if not file_name:
            return []
        root = base_url.rstrip("/")
        return [f"{root}/{entry_id}/{file_name}.{size}.jpg" for size in COVER_SIZES]
    return []


def normalize_entry(
    payload: Mapping[str, Any],
    *,
    source: str,
    cover_base_url: str,
) -> NormalizedEntry:
    """Map one raw remote catalog entry to persistence-ready fields."""

    external_id = str(payload.get("id") or "").strip()
    if not external_id:
        raise ValueError("Remote catalog entry has no id")
    attributes = payload.get("attributes") or {}
    relationships = payload.get("relationships") or []

    titles = normalize_titles(attributes)
    genres, themes = split_tags(attributes)
    year = attributes.get("year")
    slug_source = titles["title_preferred"] or titles["title_english"] or titles["title"]
    if not slug_source or slug_source == "Untitled":
        slug_source = f"{source}-{external_id}"

    return NormalizedEntry(
        source=source,
        external_id=external_id,
        slug=slugify(slug_source),
        title=titles["title"] or "Untitled",
        title_english=titles["title_english"],
        title_native=titles["title_native"],
        title_preferred=titles["title_preferred"],
        description=normalize_description(attributes),
        status=normalize_status(attributes),
        publication_year=year if isinstance(year, int) else None,
        genres=genres,
        themes=themes,
        authors=creators(relationships, "author"),
        artists=creators(relationships, "artist"),
        cover_candidates=cover_candidates(
            external_id,
            relationships,
            base_url=cover_base_url,
        ),
        remote_updated_at=attributes.get("updatedAt"),
        raw_payload=dict(payload),
    )


def _pick_exact(values: Mapping[str, str], langs: Sequence[str]) -> str | None:
    for lang in langs:
        value = values.get(lang)
        if value:
            return value
    return None
