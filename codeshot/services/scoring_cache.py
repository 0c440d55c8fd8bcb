"""
评分缓存 - selection-level and per-candidate analysis caches over one CacheStore

Read failures degrade to a miss and write failures are logged; the cache is
never allowed to fail a pipeline run.
"""
from typing import Any, Dict, List, Optional

from codeshot.core.config import Settings
from codeshot.core.logging import LogEvent
from codeshot.models.snippets import AIAnalysis, Candidate, ScoredSnippet
from codeshot.repositories.cache import CacheStore
from codeshot.services.base_service import BaseService

SELECTION_PREFIX = "snapshot:selection:"
ANALYSIS_PREFIX = "snapshot:analysis:"


def selection_key(repository_id: str, head_sha: str) -> str:
    return f"{SELECTION_PREFIX}{repository_id}:{head_sha}"


def analysis_key(repository_name: str, content_hash: str) -> str:
    return f"{ANALYSIS_PREFIX}{repository_name}:{content_hash}"


class ScoringCache(BaseService):
    """Two key namespaces sharing one cache store."""

    def __init__(self, store: CacheStore, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.store = store
        self.selection_ttl = self.settings.snapshot_selection_cache_ttl
        self.analysis_ttl = self.settings.snapshot_analysis_cache_ttl

    async def _get(self, key: str) -> Optional[Any]:
        try:
            return await self.store.get(key)
        except Exception as e:
            self.logger.warning("cache_read_failed", key=key, error=str(e))
            return None

    async def _set(self, key: str, value: Any, ttl: Optional[int]) -> None:
        try:
            await self.store.set(key, value, ttl=ttl)
        except Exception as e:
            self.logger.warning("cache_write_failed", key=key, error=str(e))

    # ------------------------------------------------------------------
    # Selection cache: (repository, head commit) -> ranked list
    # ------------------------------------------------------------------

    async def get_selection(self, repository_id: str, head_sha: str) -> Optional[List[ScoredSnippet]]:
        key = selection_key(repository_id, head_sha)
        cached = await self._get(key)
        if not isinstance(cached, list):
            self.logger.info(LogEvent.SELECTION_CACHE_MISS, repository_id=repository_id, head_sha=head_sha)
            return None

        try:
            snippets = [ScoredSnippet.from_dict(item) for item in cached]
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning("selection_cache_corrupt", key=key, error=str(e))
            return None

        self.logger.info(LogEvent.SELECTION_CACHE_HIT, repository_id=repository_id, head_sha=head_sha, count=len(snippets))
        return snippets

    async def set_selection(self, repository_id: str, head_sha: str, snippets: List[ScoredSnippet]) -> None:
        await self._set(
            selection_key(repository_id, head_sha),
            [snippet.to_dict() for snippet in snippets],
            self.selection_ttl,
        )

    # ------------------------------------------------------------------
    # Analysis cache: (repository name, content hash) -> AI fields
    # ------------------------------------------------------------------

    async def get_analysis(self, repository_name: str, candidate: Candidate) -> Optional[AIAnalysis]:
        key = analysis_key(repository_name, candidate.content_hash())
        cached = await self._get(key)
        if not isinstance(cached, dict):
            return None

        try:
            analysis = AIAnalysis.model_validate(cached)
        except ValueError as e:
            self.logger.warning("analysis_cache_corrupt", key=key, error=str(e))
            return None

        self.logger.debug(LogEvent.ANALYSIS_CACHE_HIT, file_path=candidate.file_path)
        return analysis

    async def set_analysis(self, repository_name: str, candidate: Candidate, analysis: AIAnalysis) -> None:
        payload: Dict[str, Any] = analysis.model_dump(by_alias=True)
        await self._set(analysis_key(repository_name, candidate.content_hash()), payload, self.analysis_ttl)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    async def evict_repository(self, repository_id: str, repository_name: Optional[str] = None) -> int:
        """
        Clear both namespaces for a repository.

        Unlike reads and writes, eviction errors propagate so the caller
        decides whether to swallow them.
        """
        removed = await self.store.delete_by_prefix(f"{SELECTION_PREFIX}{repository_id}:")
        if repository_name:
            removed += await self.store.delete_by_prefix(f"{ANALYSIS_PREFIX}{repository_name}:")
        self.logger.debug("repository_cache_evicted", repository_id=repository_id, removed=removed)
        return removed
