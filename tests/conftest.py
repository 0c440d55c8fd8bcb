"""Shared fixtures for codeshot tests.

Provides a temporary SQLite database, an in-memory cache store, fake
repository/AI/renderer/storage collaborators and sample data factories.
"""

from __future__ import annotations

import json
import struct
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
import pytest_asyncio

from codeshot.core.config import Settings
from codeshot.core.errors import CacheError, SourceNotFoundError
from codeshot.db import configure_engine, dispose_engine, init_db
from codeshot.models.snippets import CommitInfo, FileEntry
from codeshot.repositories.cache import CacheStore, InMemoryCache
from codeshot.services.ai_scorer import AIScorer
from codeshot.services.renderer import PNG_SIGNATURE
from codeshot.services.scoring_cache import ScoringCache
from codeshot.services.snapshot_pipeline import SnapshotPipeline
from codeshot.services.snapshot_store import RepositoryCreate, SnapshotCreate, SnapshotStore

NOW = datetime.now(timezone.utc)
HEAD_SHA = "abc123"


def make_png(width: int = 800, height: int = 400) -> bytes:
    """Minimal PNG signature plus IHDR chunk."""
    ihdr = struct.pack(">II", width, height) + b"\x08\x06\x00\x00\x00"
    return PNG_SIGNATURE + struct.pack(">I", 13) + b"IHDR" + ihdr + b"\x00\x00\x00\x00"


def make_source_file(lines: int = 30, name: str = "module") -> str:
    body = [f"def {name}_step_{i}(value):" if i % 3 == 0 else f"    value = value + {i}" for i in range(lines)]
    return "\n".join(body) + "\n"


def ai_payload(score: Any = 80, **overrides: Any) -> str:
    payload = {
        "selectionScore": score,
        "selectionReason": "Shows the core retry loop.",
        "complexity": "medium",
        "significance": "high",
        "isCoreFunctionality": True,
        "isRecentlyChanged": False,
        "technicalInterest": "Exponential backoff with jitter.",
    }
    payload.update(overrides)
    return json.dumps(payload)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeSource:
    """In-memory repository data source."""

    def __init__(
        self,
        commits: Optional[List[CommitInfo]] = None,
        tree: Optional[List[FileEntry]] = None,
        contents: Optional[Dict[str, Union[str, Exception]]] = None,
    ):
        self.commits = commits if commits is not None else [
            CommitInfo(sha=HEAD_SHA, message="Refactor services", date=NOW - timedelta(days=1)),
            CommitInfo(sha="0ld5ha", message="Initial commit", date=NOW - timedelta(days=40)),
        ]
        self.tree = tree or []
        self.contents = contents or {}
        self.content_calls: List[str] = []
        self.closed = False
        self.history_error: Optional[Exception] = None

    async def fetch_commit_history(self, owner: str, repo: str, limit: int) -> List[CommitInfo]:
        if self.history_error is not None:
            raise self.history_error
        return self.commits[:limit]

    async def fetch_file_tree(self, owner: str, repo: str, depth: int) -> List[FileEntry]:
        return list(self.tree)

    async def fetch_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        self.content_calls.append(path)
        value = self.contents.get(path)
        if value is None:
            raise SourceNotFoundError(f"{path} not found", path=path)
        if isinstance(value, Exception):
            raise value
        return value

    async def aclose(self) -> None:
        self.closed = True


class FakeBackend:
    """Scoring backend returning queued responses (or raising them)."""

    def __init__(self, responses: Optional[Union[List[Union[str, Exception]], Callable[[str], str]]] = None):
        self.responses = responses if responses is not None else []
        self.prompts: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def score(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if callable(self.responses):
            return self.responses(prompt)
        if not self.responses:
            return ai_payload()
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FailingBackend:
    """Always unavailable."""

    def __init__(self):
        self.calls = 0

    async def score(self, prompt: str) -> str:
        self.calls += 1
        raise ConnectionError("model endpoint unreachable")


class FakeRenderer:
    def __init__(self, fail_paths: Optional[set] = None, image: Optional[bytes] = None):
        self.fail_paths = fail_paths or set()
        self.image = image if image is not None else make_png()
        self.rendered: List[Dict[str, Any]] = []

    async def render(self, code, language, file_path, theme, show_line_numbers=False, font_size=14) -> bytes:
        if file_path in self.fail_paths:
            raise RuntimeError(f"render crashed for {file_path}")
        self.rendered.append({
            "code": code,
            "language": language,
            "file_path": file_path,
            "theme": theme,
            "show_line_numbers": show_line_numbers,
            "font_size": font_size,
        })
        return self.image


class FakeStorage:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploaded: List[str] = []
        self.deleted: List[str] = []

    async def upload(self, image: bytes, user_id: str, repository_id: str) -> str:
        if self.fail:
            raise OSError("disk full")
        url = f"memory://{user_id}/{repository_id}/{len(self.uploaded)}.png"
        self.uploaded.append(url)
        return url

    async def delete(self, url: str) -> None:
        self.deleted.append(url)


class BrokenStore(CacheStore):
    """Every operation fails like an unreachable Redis."""

    async def get(self, key: str) -> Optional[Any]:
        raise CacheError("connection refused", "get")

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        raise CacheError("connection refused", "set")

    async def delete_by_prefix(self, prefix: str) -> int:
        raise CacheError("connection refused", "clear_prefix")


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


def make_tree(count: int, size: int = 1200, directory: str = "src/services") -> List[FileEntry]:
    return [FileEntry(path=f"{directory}/module_{i}.py", type="file", size=size) for i in range(count)]


def make_contents(tree: List[FileEntry]) -> Dict[str, Union[str, Exception]]:
    return {entry.path: make_source_file(30, name=f"module_{i}") for i, entry in enumerate(tree)}


async def add_snapshot(store: SnapshotStore, repository, **overrides: Any):
    """Persist a snapshot for ``repository`` at HEAD_SHA unless overridden."""
    analysis = await store.get_latest_analysis(repository.id)
    values: Dict[str, Any] = dict(
        repository_id=repository.id,
        analysis_id=analysis.id,
        user_id=repository.user_id,
        file_path="src/services/module_0.py",
        start_line=1,
        end_line=30,
        function_name=None,
        language="python",
        lines_of_code=30,
        selection_score=50,
        selection_reason="Shows the core retry loop.",
        image_url="memory://user-1/repo/0.png",
        image_size=128,
        image_width=800,
        image_height=400,
        theme="nord",
        show_line_numbers=False,
        font_size=14,
        last_commit_sha=HEAD_SHA,
    )
    values.update(overrides)
    return await store.create_snapshot(SnapshotCreate(**values))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings(tmp_path) -> Settings:
    """Settings with zero retry delays and a throwaway database."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'codeshot-test.db'}",
        redis_url=None,
        openai_api_key=None,
        storage_path=str(tmp_path / "images"),
        storage_base_url="http://testserver/static/snapshots",
        snapshot_fetch_retry_delay=0,
        snapshot_ai_retry_delays=[0, 0, 0],
        json_logs=False,
    )


@pytest_asyncio.fixture()
async def database(settings: Settings):
    configure_engine(settings.database_url)
    await init_db()
    yield
    await dispose_engine()


@pytest.fixture()
def store(database) -> SnapshotStore:
    return SnapshotStore()


@pytest.fixture()
def cache_store() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture()
def scoring_cache(cache_store: InMemoryCache, settings: Settings) -> ScoringCache:
    return ScoringCache(cache_store, settings)


@pytest_asyncio.fixture()
async def repository(store: SnapshotStore):
    """A repository owned by ``user-1`` with one project analysis."""
    record = await store.create_repository(RepositoryCreate(
        user_id="user-1",
        name="demo",
        full_name="octo/demo",
        description="A demo service",
    ))
    await store.create_analysis(record.id, "A service that retries things.")
    return record


@pytest.fixture()
def make_pipeline(store: SnapshotStore, scoring_cache: ScoringCache, settings: Settings):
    """Factory assembling a pipeline from fakes; unspecified collaborators get defaults."""

    def _make(
        source: Optional[FakeSource] = None,
        backend: Any = None,
        renderer: Optional[FakeRenderer] = None,
        storage: Optional[FakeStorage] = None,
    ) -> SnapshotPipeline:
        source = source or FakeSource()
        return SnapshotPipeline(
            store=store,
            scoring_cache=scoring_cache,
            scorer=AIScorer(backend, scoring_cache, settings),
            renderer=renderer or FakeRenderer(),
            storage=storage or FakeStorage(),
            source_factory=lambda token: source,
            settings=settings,
        )

    return _make
