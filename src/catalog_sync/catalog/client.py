"""HTTP client for the remote catalog service (MangaDex REST API)."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from catalog_sync.catalog.models import CatalogPage
from catalog_sync.config import CatalogSettings
from catalog_sync.errors import RemoteServiceError

logger = logging.getLogger(__name__)

ENTRY_INCLUDES = ("cover_art", "author", "artist")
ACTIVITY_INCLUDES = ("manga", "scanlation_group")
MAX_ERROR_BODY_CHARS = 600


class CatalogSource(Protocol):
    """Paginated remote catalog consumed by the crawl and activity steps."""

    def list_page(self, limit: int, offset: int) -> CatalogPage:
        """List catalog entries in a stable order for exhaustive crawling."""
        raise NotImplementedError

    def list_recent(
        self,
        limit: int,
        offset: int,
        *,
        parent_external_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """List activity items ordered newest-first by remote update time."""
        raise NotImplementedError

    def get_entry(self, external_id: str) -> dict[str, Any]:
        """Fetch one catalog entry by its remote id."""
        raise NotImplementedError


class MangaDexClient:
    """Thin synchronous wrapper over the MangaDex listing endpoints."""

    def __init__(
        self,
        settings: CatalogSettings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or CatalogSettings()
        timeout = httpx.Timeout(self.settings.request_timeout_seconds, connect=10.0)
        self._client = httpx.Client(
            base_url=self.settings.base_url,
            timeout=timeout,
            headers={"User-Agent": self.settings.user_agent},
            transport=transport or httpx.HTTPTransport(retries=self.settings.max_retries),
            follow_redirects=True,
        )

    def list_page(self, limit: int, offset: int) -> CatalogPage:
        params: list[tuple[str, str | int]] = [
            ("limit", limit),
            ("offset", offset),
            ("order[createdAt]", "asc"),
        ]
        params.extend(("includes[]", value) for value in ENTRY_INCLUDES)
        payload = self._get_json("/manga", params)
        items = _data_list(payload)
        total = payload.get("total")
        return CatalogPage(
            items=items,
            limit=int(payload.get("limit") or limit),
            offset=int(payload.get("offset") or offset),
            total=int(total) if isinstance(total, int) else None,
        )

    def list_recent(
        self,
        limit: int,
        offset: int,
        *,
        parent_external_id: str | None = None,
    ) -> list[dict[str, Any]]:
        params: list[tuple[str, str | int]] = [
            ("limit", limit),
            ("offset", offset),
            ("order[updatedAt]", "desc"),
        ]
        params.extend(("includes[]", value) for value in ACTIVITY_INCLUDES)
        if parent_external_id:
            params.append(("manga", parent_external_id))
        return _data_list(self._get_json("/chapter", params))

    def get_entry(self, external_id: str) -> dict[str, Any]:
        params = [("includes[]", value) for value in ENTRY_INCLUDES]
        payload = self._get_json(f"/manga/{external_id}", params)
        data = payload.get("data")
        if not isinstance(data, dict):
            raise RemoteServiceError(
                message=f"Catalog entry payload missing data for {external_id}",
                code="malformed_response",
            )
        return data

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> MangaDexClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _get_json(self, path: str, params: list[tuple[str, Any]]) -> dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
        except httpx.TimeoutException as error:
            logger.warning("Timeout calling catalog service %s", path)
            raise RemoteServiceError(
                message=f"Catalog service timeout: {path}",
                code="timeout",
            ) from error
        except httpx.HTTPError as error:
            logger.warning("HTTP error calling catalog service %s: %s", path, error)
            raise RemoteServiceError(
                message=f"Catalog service request failed: {error}",
                code="transport_error",
            ) from error

        if not response.is_success:
            body = response.text
            raise RemoteServiceError(
                message=f"Catalog service {path} failed: {response.status_code} {body}"[
                    :MAX_ERROR_BODY_CHARS
                ],
                status_code=response.status_code,
                code="http_status",
            )
        try:
            payload = response.json()
        except ValueError as error:
            raise RemoteServiceError(
                message=f"Catalog service {path} returned invalid JSON",
                status_code=response.status_code,
                code="malformed_response",
            ) from error
        if not isinstance(payload, dict):
            raise RemoteServiceError(
                message=f"Catalog service {path} returned unexpected payload",
                status_code=response.status_code,
                code="malformed_response",
            )
        return payload


def _data_list(payload: dict[str, Any]) -> list[dict[str, Any]]:
    data = payload.get("data") or []
    if not isinstance(data, list):
        raise RemoteServiceError(message="Catalog listing data is not a list", code="malformed_response")
    return [item for item in data if isinstance(item, dict)]
