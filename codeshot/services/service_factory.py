"""
服务工厂 - 统一的服务创建和管理
"""
from typing import TYPE_CHECKING, Optional

# 避免循环导入，使用TYPE_CHECKING
if TYPE_CHECKING:
    from codeshot.repositories.cache import CacheStore
    from codeshot.services.snapshot_pipeline import SnapshotPipeline
    from codeshot.services.snapshot_store import SnapshotStore

_cache_store: Optional["CacheStore"] = None
_pipeline: Optional["SnapshotPipeline"] = None


class ServiceFactory:
    """
    服务工厂 - 提供统一的服务访问接口

    The cache store and pipeline are process-wide; repository data sources
    are created per run because they carry the caller's access token.
    """

    @staticmethod
    def get_cache_store() -> 'CacheStore':
        """Redis when configured, otherwise an in-process store"""
        global _cache_store
        if _cache_store is None:
            from codeshot.core.config import get_settings
            if get_settings().uses_redis:
                from codeshot.repositories.redis import RedisCache
                _cache_store = RedisCache()
            else:
                from codeshot.repositories.cache import InMemoryCache
                _cache_store = InMemoryCache()
        return _cache_store

    @staticmethod
    def get_snapshot_store() -> 'SnapshotStore':
        """获取快照存储网关"""
        from codeshot.services.snapshot_store import SnapshotStore
        return SnapshotStore()

    @staticmethod
    def get_snapshot_pipeline() -> 'SnapshotPipeline':
        """获取快照生成编排服务"""
        global _pipeline
        if _pipeline is None:
            from codeshot.core.config import get_settings
            from codeshot.services.ai_scorer import AIScorer
            from codeshot.services.github_source import GitHubDataSource
            from codeshot.services.object_storage import LocalObjectStorage
            from codeshot.services.renderer import HttpRenderer
            from codeshot.services.scoring_backend import OpenAIScoringBackend
            from codeshot.services.scoring_cache import ScoringCache
            from codeshot.services.snapshot_pipeline import SnapshotPipeline

            settings = get_settings()
            scoring_cache = ScoringCache(ServiceFactory.get_cache_store(), settings)
            backend = OpenAIScoringBackend(settings) if settings.openai_api_key else None
            _pipeline = SnapshotPipeline(
                store=ServiceFactory.get_snapshot_store(),
                scoring_cache=scoring_cache,
                scorer=AIScorer(backend, scoring_cache, settings),
                renderer=HttpRenderer(settings),
                storage=LocalObjectStorage(settings),
                source_factory=lambda token: GitHubDataSource(token, settings),
                settings=settings,
            )
        return _pipeline

    @staticmethod
    async def shutdown() -> None:
        """Release process-wide clients"""
        global _cache_store, _pipeline
        from codeshot.repositories.redis import RedisCache
        if isinstance(_cache_store, RedisCache):
            await _cache_store.close()
        from codeshot.services.renderer import HttpRenderer
        if _pipeline is not None and isinstance(_pipeline.renderer, HttpRenderer):
            await _pipeline.renderer.close()
        from codeshot.services.scoring_backend import OpenAIScoringBackend
        if _pipeline is not None and isinstance(_pipeline.scorer.backend, OpenAIScoringBackend):
            await _pipeline.scorer.backend.close()
        _cache_store = None
        _pipeline = None
