"""Tests for codeshot/services/staleness.py

Covers:
- Marking snapshots from older commits stale
- Idempotence and repository isolation
- Only ``is_stale`` changes
- Cache eviction and tolerance of cache failures
"""

from __future__ import annotations

import pytest

from codeshot.core.config import Settings
from codeshot.models.snippets import AIAnalysis, Candidate, ScoredSnippet
from codeshot.services.scoring_cache import ScoringCache
from codeshot.services.snapshot_store import RepositoryCreate, SnapshotStore
from codeshot.services.staleness import StalenessInvalidator

from conftest import HEAD_SHA, BrokenStore, add_snapshot, ai_payload


@pytest.fixture()
def invalidator(store: SnapshotStore, scoring_cache: ScoringCache, settings: Settings) -> StalenessInvalidator:
    return StalenessInvalidator(store, scoring_cache, settings)


@pytest.mark.asyncio
async def test_new_commit_marks_all_older_snapshots_stale(
    store: SnapshotStore, repository, invalidator: StalenessInvalidator
) -> None:
    for score in (50, 60, 70):
        await add_snapshot(store, repository, selection_score=score)

    count = await invalidator.invalidate_on_new_commit(repository.id, "def456")

    assert count == 3
    assert await store.find_fresh_snapshots(repository.id, "user-1") == []
    assert all(s.is_stale for s in await store.list_repository_snapshots(repository.id))


@pytest.mark.asyncio
async def test_same_head_leaves_snapshots_fresh(
    store: SnapshotStore, repository, invalidator: StalenessInvalidator
) -> None:
    await add_snapshot(store, repository)

    assert await invalidator.invalidate_on_new_commit(repository.id, HEAD_SHA) == 0
    assert len(await store.find_fresh_snapshots(repository.id, "user-1")) == 1


@pytest.mark.asyncio
async def test_invalidation_is_idempotent(store: SnapshotStore, repository, invalidator: StalenessInvalidator) -> None:
    await add_snapshot(store, repository)
    await add_snapshot(store, repository)

    assert await invalidator.invalidate_on_new_commit(repository.id, "def456") == 2
    before = [(s.id, s.is_stale) for s in await store.list_repository_snapshots(repository.id)]

    assert await invalidator.invalidate_on_new_commit(repository.id, "def456") == 0
    after = [(s.id, s.is_stale) for s in await store.list_repository_snapshots(repository.id)]
    assert after == before


@pytest.mark.asyncio
async def test_stale_snapshots_never_become_fresh(
    store: SnapshotStore, repository, invalidator: StalenessInvalidator
) -> None:
    old = await add_snapshot(store, repository, last_commit_sha="aaa")
    await invalidator.invalidate_on_new_commit(repository.id, "bbb")
    await add_snapshot(store, repository, last_commit_sha="bbb")

    # moving back to the old commit does not revive the old snapshot
    assert await invalidator.invalidate_on_new_commit(repository.id, "aaa") == 1

    reloaded = await store.get_snapshot(old.id)
    assert reloaded.is_stale is True
    assert await store.find_fresh_snapshots(repository.id, "user-1") == []


@pytest.mark.asyncio
async def test_other_repositories_are_untouched(
    store: SnapshotStore, repository, invalidator: StalenessInvalidator
) -> None:
    other = await store.create_repository(RepositoryCreate(user_id="user-1", name="other", full_name="octo/other"))
    await store.create_analysis(other.id, "Other summary.")
    await add_snapshot(store, repository)
    kept = await add_snapshot(store, other)

    await invalidator.invalidate_on_new_commit(repository.id, "def456")

    assert [s.id for s in await store.find_fresh_snapshots(other.id, "user-1")] == [kept.id]


@pytest.mark.asyncio
async def test_only_the_stale_flag_changes(store: SnapshotStore, repository, invalidator: StalenessInvalidator) -> None:
    snapshot = await add_snapshot(store, repository, function_name="retry", theme="dracula", font_size=16)

    await invalidator.invalidate_on_new_commit(repository.id, "def456")

    reloaded = await store.get_snapshot(snapshot.id)
    assert reloaded.is_stale is True
    assert reloaded.model_dump(exclude={"is_stale"}) == snapshot.model_dump(exclude={"is_stale"})


@pytest.mark.asyncio
async def test_repository_caches_are_evicted(
    store: SnapshotStore, repository, scoring_cache: ScoringCache, invalidator: StalenessInvalidator
) -> None:
    candidate = Candidate(file_path="src/a.py", start_line=1, end_line=30, language="python",
                          lines_of_code=30, content="x = 1\n")
    await scoring_cache.set_selection(repository.id, HEAD_SHA, [ScoredSnippet.heuristic(candidate, 40)])
    await scoring_cache.set_analysis(repository.name, candidate, AIAnalysis.model_validate_json(ai_payload()))

    await invalidator.invalidate_on_new_commit(repository.id, "def456")

    assert await scoring_cache.get_selection(repository.id, HEAD_SHA) is None
    assert await scoring_cache.get_analysis(repository.name, candidate) is None


@pytest.mark.asyncio
async def test_cache_failures_do_not_break_invalidation(
    store: SnapshotStore, repository, settings: Settings
) -> None:
    await add_snapshot(store, repository)
    invalidator = StalenessInvalidator(store, ScoringCache(BrokenStore(), settings), settings)

    assert await invalidator.invalidate_on_new_commit(repository.id, "def456") == 1
    assert await store.find_fresh_snapshots(repository.id, "user-1") == []
