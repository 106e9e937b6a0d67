from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import allure
import httpx
import pytest
from fastapi.testclient import TestClient

from catalog_sync import __version__
from catalog_sync.api.app import create_app
from catalog_sync.config import ApiSettings, Settings

pytestmark = [
    allure.epic("Catalog Sync"),
    allure.feature("HTTP Trigger Surface"),
]

ADMIN = {"x-admin-secret": "admin-s3cret"}


class CatalogStub:
    """Serves the listing, feed and entry endpoints from in-memory payloads."""

    def __init__(self, entries: list[dict[str, Any]], feed: list[dict[str, Any]]) -> None:
        self.entries = entries
        self.feed = feed
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        limit = int(params.get("limit", "10"))
        offset = int(params.get("offset", "0"))
        path = request.url.path
        if path == "/manga":
            return httpx.Response(
                200,
                json={
                    "data": self.entries[offset : offset + limit],
                    "limit": limit,
                    "offset": offset,
                    "total": len(self.entries),
                },
            )
        if path == "/chapter":
            return httpx.Response(200, json={"data": self.feed[offset : offset + limit]})
        if path.startswith("/manga/"):
            entry_id = path.rsplit("/", 1)[-1]
            for entry in self.entries:
                if entry["id"] == entry_id:
                    return httpx.Response(200, json={"data": entry})
        return httpx.Response(404, json={"errors": [{"detail": "not found"}]})


@pytest.fixture()
def stub(make_manga: Any, make_chapter: Any) -> CatalogStub:
    return CatalogStub(
        entries=[make_manga(f"md-{index}") for index in range(3)],
        feed=[
            make_chapter("c2", "md-1", "2026-10-01T02:00:00+00:00"),
            make_chapter("c1", "md-2", "2026-10-01T01:00:00+00:00"),
        ],
    )


def _settings(tmp_path: Path, **api: str | None) -> Settings:
    return Settings(
        db_path=tmp_path / "api.db",
        api=ApiSettings(
            admin_secret=api.get("admin_secret", "admin-s3cret"),
            cron_token=api.get("cron_token", "cron-t0ken"),
        ),
    )


@pytest.fixture()
def client(tmp_path: Path, stub: CatalogStub) -> Iterator[TestClient]:
    app = create_app(_settings(tmp_path), catalog_transport=httpx.MockTransport(stub))
    with TestClient(app) as test_client:
        yield test_client


def test_health_is_public(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "version": __version__}


@pytest.mark.parametrize(
    "path",
    [
        "/api/admin/crawl-step",
        "/api/admin/activity-sync",
        "/api/admin/process-activity",
        "/api/admin/queue-health",
        "/api/admin/worker-runs",
        "/api/admin/run-pipeline",
    ],
)
def test_admin_routes_reject_wrong_secret(client: TestClient, path: str) -> None:
    missing = client.get(path)
    wrong = client.get(path, headers={"x-admin-secret": "nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Unauthorized"}


def test_admin_secret_not_configured_is_server_error(tmp_path: Path, stub: CatalogStub) -> None:
    app = create_app(
        _settings(tmp_path, admin_secret=None),
        catalog_transport=httpx.MockTransport(stub),
    )
    with TestClient(app) as test_client:
        response = test_client.get("/api/admin/queue-health", headers=ADMIN)

    assert response.status_code == 500
    assert response.json() == {"error": "ADMIN_SECRET not set"}


def test_crawl_step_clamps_limits_and_advances_cursor(
    client: TestClient,
    stub: CatalogStub,
) -> None:
    response = client.get(
        "/api/admin/crawl-step",
        params={"limit": 0, "page_limit": 5},
        headers=ADMIN,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["run_id"]
    assert body["page"] == {"offset": 0, "limit": 25, "total": 3, "fetched": 3}
    assert body["processed_count"] == 1
    assert body["next_offset"] == 0
    assert body["wrapped"] is True
    assert stub.requests[0].url.params["limit"] == "25"


def test_activity_sync_and_peek(client: TestClient) -> None:
    peek = client.get("/api/admin/activity-sync", params={"peek": "1"}, headers=ADMIN)
    synced = client.get(
        "/api/admin/activity-sync",
        params={"max_pages": 99, "hard_cap": 100000},
        headers=ADMIN,
    )
    again = client.get("/api/admin/activity-sync", headers=ADMIN)

    assert peek.status_code == 200
    assert [item["is_new"] for item in peek.json()["items"]] == [True, True]
    assert synced.json()["processed"] == 2
    assert synced.json()["cursor_after"] == {
        "updated_at": "2026-10-01T02:00:00+00:00",
        "last_id": "c2",
    }
    assert again.json()["processed"] == 0
    assert again.json()["cursor_advanced"] is False


def test_process_activity_clamps_and_reports_items(client: TestClient) -> None:
    client.get("/api/admin/activity-sync", headers=ADMIN)

    response = client.get(
        "/api/admin/process-activity",
        params={"window": 1, "batch": 999, "lock_seconds": 1},
        headers=ADMIN,
    )

    body = response.json()
    assert response.status_code == 200
    assert (body["window"], body["batch_size"], body["lease_seconds"]) == (50, 50, 30)
    assert body["enqueued_unique_ids"] == 2
    assert body["succeeded"] == 2
    assert body["failed"] == 0


def test_unparsable_numbers_fall_back_to_defaults(client: TestClient, stub: CatalogStub) -> None:
    crawl = client.get(
        "/api/admin/crawl-step",
        params={"limit": "lots", "page_limit": "1e3"},
        headers=ADMIN,
    )
    process = client.get(
        "/api/admin/process-activity",
        params={"window": "all", "batch": "", "lock_seconds": "3.5"},
        headers=ADMIN,
    )

    assert crawl.status_code == 200
    assert crawl.json()["processed_count"] == 3
    assert stub.requests[0].url.params["limit"] == "100"
    assert process.status_code == 200
    body = process.json()
    assert (body["window"], body["batch_size"], body["lease_seconds"]) == (300, 15, 180)


def test_crawl_step_on_time_stream_is_rejected(client: TestClient, stub: CatalogStub) -> None:
    response = client.get(
        "/api/admin/crawl-step",
        params={"stream_id": "recent_chapters"},
        headers=ADMIN,
    )
    runs = client.get("/api/admin/worker-runs", headers=ADMIN).json()["runs"]

    assert response.status_code == 500
    assert "expected kind=offset" in response.json()["error"]
    assert all(request.url.path != "/manga" for request in stub.requests)
    assert (runs[0]["step"], runs[0]["status"]) == ("crawl_step", "failed")


def test_queue_health_and_worker_runs(client: TestClient) -> None:
    client.get("/api/admin/run-pipeline", headers=ADMIN)

    health = client.get("/api/admin/queue-health", params={"sample": 1}, headers=ADMIN).json()
    runs = client.get("/api/admin/worker-runs", params={"limit": 1}, headers=ADMIN).json()

    assert health["ok"] is True
    assert health["counts"]["done"] == 2
    assert health["backlog"] == 0
    assert runs["limit"] == 10
    steps = [run["step"] for run in runs["runs"]]
    assert sorted(steps) == ["activity_sync", "process_activity", "run_pipeline"]
    assert {run["status"] for run in runs["runs"]} == {"succeeded"}


def test_missing_stream_fails_step_and_is_recorded(client: TestClient) -> None:
    response = client.get(
        "/api/admin/activity-sync",
        params={"stream_id": "unknown_stream"},
        headers=ADMIN,
    )
    runs = client.get("/api/admin/worker-runs", headers=ADMIN).json()["runs"]

    assert response.status_code == 500
    assert "unknown_stream" in response.json()["error"]
    assert runs[0]["status"] == "failed"
    assert runs[0]["stream_id"] == "unknown_stream"


def test_cron_accepts_header_or_query_token(client: TestClient) -> None:
    by_header = client.get("/api/cron/activity-sync", headers={"x-cron-token": "cron-t0ken"})
    by_query = client.get("/api/cron/activity-sync", params={"token": "cron-t0ken"})
    wrong = client.get("/api/cron/activity-sync", params={"token": "admin-s3cret"})

    assert by_header.status_code == 200
    assert by_header.json()["processed"] == 2
    assert by_query.status_code == 200
    assert wrong.status_code == 401


def test_cron_route_does_not_accept_admin_secret(client: TestClient) -> None:
    response = client.get("/api/cron/activity-sync", headers=ADMIN)

    assert response.status_code == 401
