"""Tests for codeshot/services/github_source.py

Uses httpx.MockTransport for deterministic HTTP simulation.
"""

from __future__ import annotations

from typing import Callable, List

import httpx
import pytest

from codeshot.core.config import Settings
from codeshot.core.errors import (
    RepositorySourceError,
    SourceNotFoundError,
    SourceRateLimitedError,
    SourceTransientError,
)
from codeshot.services.github_source import GitHubDataSource


def _source(handler: Callable[[httpx.Request], httpx.Response], settings: Settings) -> GitHubDataSource:
    client = httpx.AsyncClient(base_url="https://api.github.test", transport=httpx.MockTransport(handler))
    return GitHubDataSource(settings=settings, client=client)


@pytest.mark.asyncio
async def test_commit_history_is_parsed(settings: Settings) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[
            {"sha": "abc123", "commit": {"message": "Add cache", "author": {"date": "2026-10-01T12:00:00Z"}}},
            {"sha": "def456", "commit": {"message": "Init", "author": {}}},
        ])

    source = _source(handler, settings)
    commits = await source.fetch_commit_history("octo", "demo", 50)
    await source.aclose()

    assert seen[0].url.path == "/repos/octo/demo/commits"
    assert seen[0].url.params["per_page"] == "50"
    assert [c.sha for c in commits] == ["abc123", "def456"]
    assert commits[0].message == "Add cache"
    assert commits[0].date.year == 2026 and commits[0].date.utcoffset().total_seconds() == 0
    assert commits[1].date is None


@pytest.mark.asyncio
async def test_file_tree_respects_depth(settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/octo/demo/git/trees/HEAD"
        return httpx.Response(200, json={"tree": [
            {"path": "src", "type": "tree"},
            {"path": "src/app.py", "type": "blob", "size": 1200},
            {"path": "src/a/b.py", "type": "blob", "size": 900},
            {"path": "src/a/b/c.py", "type": "blob", "size": 900},
        ]})

    source = _source(handler, settings)
    tree = await source.fetch_file_tree("octo", "demo", 3)

    assert [(e.path, e.type, e.size) for e in tree] == [
        ("src", "dir", 0),
        ("src/app.py", "file", 1200),
        ("src/a/b.py", "file", 900),
    ]


@pytest.mark.asyncio
async def test_file_content_requests_raw_media_type(settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/octo/demo/contents/src/app.py"
        assert request.url.params["ref"] == "abc123"
        assert request.headers["accept"] == "application/vnd.github.raw"
        return httpx.Response(200, text="print('hi')\n")

    source = _source(handler, settings)

    assert await source.fetch_file_content("octo", "demo", "src/app.py", "abc123") == "print('hi')\n"


@pytest.mark.asyncio
async def test_file_content_path_is_percent_encoded(settings: Settings) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="class Program {}\n")

    source = _source(handler, settings)

    assert await source.fetch_file_content("octo", "demo", "src/C#/Program?.cs", "abc") == "class Program {}\n"
    assert seen[0].url.raw_path == b"/repos/octo/demo/contents/src/C%23/Program%3F.cs?ref=abc"
    assert seen[0].url.params["ref"] == "abc"


@pytest.mark.parametrize("body", [b"<html>busy</html>", b'[{"commit": {}}]', b'{"message": "odd"}'])
@pytest.mark.asyncio
async def test_malformed_commit_payloads_are_transient(settings: Settings, body: bytes) -> None:
    source = _source(lambda request: httpx.Response(200, content=body), settings)

    with pytest.raises(SourceTransientError):
        await source.fetch_commit_history("octo", "demo", 10)


@pytest.mark.asyncio
async def test_malformed_tree_payload_is_transient(settings: Settings) -> None:
    source = _source(lambda request: httpx.Response(200, json=["not", "a", "tree"]), settings)

    with pytest.raises(SourceTransientError):
        await source.fetch_file_tree("octo", "demo", 3)


@pytest.mark.parametrize(
    "response, expected",
    [
        (httpx.Response(404), SourceNotFoundError),
        (httpx.Response(429), SourceRateLimitedError),
        (httpx.Response(403, headers={"x-ratelimit-remaining": "0"}), SourceRateLimitedError),
        (httpx.Response(502), SourceTransientError),
        (httpx.Response(401, text="bad credentials"), RepositorySourceError),
    ],
)
@pytest.mark.asyncio
async def test_error_statuses_are_classified(settings: Settings, response: httpx.Response, expected) -> None:
    source = _source(lambda request: response, settings)

    with pytest.raises(expected) as exc_info:
        await source.fetch_file_content("octo", "demo", "src/app.py", "abc123")

    assert exc_info.value.details["path"] == "/repos/octo/demo/contents/src/app.py"


@pytest.mark.asyncio
async def test_plain_forbidden_is_not_rate_limiting(settings: Settings) -> None:
    source = _source(lambda request: httpx.Response(403, headers={"x-ratelimit-remaining": "12"}), settings)

    with pytest.raises(RepositorySourceError) as exc_info:
        await source.fetch_commit_history("octo", "demo", 10)

    assert not isinstance(exc_info.value, SourceRateLimitedError)


@pytest.mark.asyncio
async def test_transport_errors_are_transient(settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    source = _source(handler, settings)

    with pytest.raises(SourceTransientError):
        await source.fetch_file_tree("octo", "demo", 3)


def test_access_token_becomes_bearer_header(settings: Settings) -> None:
    source = GitHubDataSource(access_token="ghp_secret", settings=settings)

    assert source.client.headers["authorization"] == "Bearer ghp_secret"
    assert str(source.client.base_url).rstrip("/") == settings.github_api_url.rstrip("/")
