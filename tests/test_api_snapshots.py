"""Tests for the /api/v1/snapshots routes.

Uses ASGITransport so requests go straight to the ASGI app; the pipeline
dependency is overridden with one assembled from fakes.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from codeshot.api.deps import get_access_token, get_snapshot_pipeline
from codeshot.main import app

from conftest import FakeBackend, FakeSource, FakeStorage, make_contents, make_tree

USER = {"X-User-Id": "user-1"}


@pytest.fixture()
def storage() -> FakeStorage:
    return FakeStorage()


@pytest_asyncio.fixture()
async def client(make_pipeline, storage: FakeStorage):
    tree = make_tree(4)
    pipeline = make_pipeline(
        source=FakeSource(tree=tree, contents=make_contents(tree)),
        backend=FakeBackend(),
        storage=storage,
    )
    app.dependency_overrides[get_snapshot_pipeline] = lambda: pipeline
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _generate(client: AsyncClient, repository_id: str, **options) -> list:
    response = await client.post(
        "/api/v1/snapshots/generate",
        json={"repository_id": repository_id, "options": options},
        headers=USER,
    )
    assert response.status_code == 200, response.text
    return response.json()["items"]


@pytest.mark.asyncio
async def test_generate_returns_persisted_snapshots(client: AsyncClient, repository) -> None:
    items = await _generate(client, repository.id, max_snippets=2, theme="dracula")

    assert len(items) == 2
    assert all(item["repository_id"] == repository.id for item in items)
    assert all(item["theme"] == "dracula" and item["is_stale"] is False for item in items)
    assert items[0]["last_commit_sha"] == "abc123"


@pytest.mark.asyncio
async def test_list_get_and_delete(client: AsyncClient, repository, storage: FakeStorage) -> None:
    items = await _generate(client, repository.id, max_snippets=2)

    listed = await client.get(f"/api/v1/snapshots/{repository.id}", headers=USER)
    assert listed.status_code == 200
    assert listed.json()["count"] == 2

    snapshot_id = items[0]["id"]
    fetched = await client.get(f"/api/v1/snapshots/snapshot/{snapshot_id}", headers=USER)
    assert fetched.status_code == 200
    assert fetched.json()["file_path"] == items[0]["file_path"]

    deleted = await client.delete(f"/api/v1/snapshots/snapshot/{snapshot_id}", headers=USER)
    assert deleted.status_code == 204
    assert storage.deleted == [items[0]["image_url"]]

    missing = await client.get(f"/api/v1/snapshots/snapshot/{snapshot_id}", headers=USER)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_invalidate_marks_snapshots_stale(client: AsyncClient, repository) -> None:
    await _generate(client, repository.id, max_snippets=3)

    response = await client.post(
        f"/api/v1/snapshots/{repository.id}/invalidate", json={"head_sha": "def456"}, headers=USER
    )

    assert response.status_code == 200
    assert response.json() == {"repository_id": repository.id, "marked_stale": 3}
    listed = await client.get(f"/api/v1/snapshots/{repository.id}", headers=USER)
    assert listed.json() == {"items": [], "count": 0}


@pytest.mark.asyncio
async def test_missing_user_header_is_rejected(client: AsyncClient, repository) -> None:
    response = await client.post("/api/v1/snapshots/generate", json={"repository_id": repository.id})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_foreign_repository_is_forbidden(client: AsyncClient, repository) -> None:
    response = await client.post(
        "/api/v1/snapshots/generate",
        json={"repository_id": repository.id},
        headers={"X-User-Id": "user-2"},
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "UNAUTHORIZED"

    invalidate = await client.post(
        f"/api/v1/snapshots/{repository.id}/invalidate",
        json={"head_sha": "def456"},
        headers={"X-User-Id": "user-2"},
    )
    assert invalidate.status_code == 403


@pytest.mark.asyncio
async def test_unknown_repository_is_not_found(client: AsyncClient, repository) -> None:
    response = await client.post("/api/v1/snapshots/generate", json={"repository_id": "nope"}, headers=USER)

    assert response.status_code == 404
    body = response.json()["error"]
    assert body["code"] == "NOT_FOUND"
    assert body["details"]["resource_id"] == "nope"


@pytest.mark.asyncio
async def test_invalid_options_are_rejected(client: AsyncClient, repository) -> None:
    response = await client.post(
        "/api/v1/snapshots/generate",
        json={"repository_id": repository.id, "options": {"max_snippets": 0}},
        headers=USER,
    )

    assert response.status_code == 422


@pytest.mark.parametrize(
    "header, expected",
    [(None, None), ("Bearer ghp_abc", "ghp_abc"), ("bearer  tok ", "tok"), ("Basic xyz", None)],
)
def test_access_token_parsing(header, expected) -> None:
    assert get_access_token(header) == expected
