from __future__ import annotations

import allure
import httpx
import pytest

from catalog_sync.catalog.client import MangaDexClient
from catalog_sync.config import CatalogSettings
from catalog_sync.errors import RemoteServiceError

pytestmark = [
    allure.epic("Catalog Sync"),
    allure.feature("Catalog Client"),
]


def _client(handler) -> MangaDexClient:
    return MangaDexClient(
        CatalogSettings(base_url="https://catalog.example.test"),
        transport=httpx.MockTransport(handler),
    )


def test_list_page_requests_stable_order_and_reads_total() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"data": [{"id": "md-1"}, "junk"], "limit": 25, "offset": 50, "total": 57},
        )

    with _client(handler) as client:
        page = client.list_page(25, 50)

    assert page.items == [{"id": "md-1"}]
    assert (page.limit, page.offset, page.total) == (25, 50, 57)
    request = seen[0]
    assert request.url.path == "/manga"
    assert request.url.params["order[createdAt]"] == "asc"
    assert request.url.params.get_list("includes[]") == ["cover_art", "author", "artist"]
    assert request.headers["User-Agent"].startswith("catalog-sync/")


def test_list_recent_orders_by_update_time_and_filters_by_parent() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": [{"id": "c1"}]})

    with _client(handler) as client:
        items = client.list_recent(10, 0, parent_external_id="md-1")
        client.list_recent(10, 10)

    assert items == [{"id": "c1"}]
    assert seen[0].url.path == "/chapter"
    assert seen[0].url.params["order[updatedAt]"] == "desc"
    assert seen[0].url.params["manga"] == "md-1"
    assert "manga" not in seen[1].url.params
    assert seen[1].url.params["offset"] == "10"


def test_get_entry_returns_data_object() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/manga/md-1"
        return httpx.Response(200, json={"result": "ok", "data": {"id": "md-1"}})

    with _client(handler) as client:
        assert client.get_entry("md-1") == {"id": "md-1"}


def test_http_error_status_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="x" * 2000)

    with _client(handler) as client, pytest.raises(RemoteServiceError) as error:
        client.get_entry("md-1")

    assert error.value.status_code == 503
    assert error.value.code == "http_status"
    assert len(str(error.value)) <= 600


def test_timeout_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with _client(handler) as client, pytest.raises(RemoteServiceError) as error:
        client.list_page(10, 0)

    assert error.value.code == "timeout"


@pytest.mark.parametrize(
    ("response", "expected"),
    [
        (httpx.Response(200, text="not json"), "invalid JSON"),
        (httpx.Response(200, json=[1, 2]), "unexpected payload"),
        (httpx.Response(200, json={"data": None}), "missing data"),
    ],
)
def test_malformed_responses_are_wrapped(response: httpx.Response, expected: str) -> None:
    with _client(lambda request: response) as client, pytest.raises(RemoteServiceError) as error:
        client.get_entry("md-1")

    assert error.value.code == "malformed_response"
    assert expected in str(error.value)
