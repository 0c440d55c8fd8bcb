"""
过期失效 - marks snapshots stale when the repository head moves
"""
from typing import Optional

from codeshot.core.config import Settings
from codeshot.core.logging import LogEvent
from codeshot.services.base_service import BaseService
from codeshot.services.scoring_cache import ScoringCache
from codeshot.services.snapshot_store import SnapshotStore


class StalenessInvalidator(BaseService):
    """Flips ``is_stale`` for outdated snapshots and evicts the repository's caches."""

    def __init__(self, store: SnapshotStore, cache: ScoringCache, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.store = store
        self.cache = cache

    async def invalidate_on_new_commit(self, repository_id: str, new_head_sha: str) -> int:
        """
        Mark every fresh snapshot of ``repository_id`` not produced at
        ``new_head_sha`` as stale. Idempotent; returns the rows changed.

        Store errors propagate. Cache eviction errors are logged only.
        """
        count = await self.store.mark_stale(repository_id, new_head_sha)
        self.logger.info(
            LogEvent.SNAPSHOTS_MARKED_STALE,
            repository_id=repository_id,
            new_head_sha=new_head_sha,
            count=count,
        )

        try:
            repository = await self.store.get_repository(repository_id)
            await self.cache.evict_repository(repository_id, repository.name if repository else None)
        except Exception as e:
            self.logger.warning(LogEvent.CACHE_EVICTION_FAILED, repository_id=repository_id, error=str(e))

        return count
