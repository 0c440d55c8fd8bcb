"""
Redis缓存服务 - 异步Redis操作，支持JSON序列化
"""
import json
from datetime import timedelta
from typing import Any, Optional, Union

import redis.asyncio as redis

from codeshot.core.config import get_settings
from codeshot.core.errors import CacheError
from codeshot.core.logging import get_logger
from codeshot.repositories.cache import CacheStore

logger = get_logger(__name__)


class RedisRepository:
    """Redis缓存仓库 - 异步操作，支持JSON序列化和TTL管理"""

    def __init__(self, redis_client: Optional[redis.Redis] = None, redis_url: Optional[str] = None):
        self._client = redis_client
        self._redis_url = redis_url
        self._connected = False

    @property
    def client(self) -> redis.Redis:
        """获取Redis客户端，延迟连接"""
        if self._client is None:
            url = self._redis_url or get_settings().redis_url
            self._client = redis.from_url(
                url,
                encoding="utf-8",
                decode_responses=True,
                retry_on_timeout=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        return self._client

    async def connect(self) -> bool:
        """建立Redis连接"""
        try:
            await self.client.ping()
            self._connected = True
            logger.info("redis_connected")
            return True
        except Exception as e:
            logger.error("redis_connect_failed", error=str(e))
            self._connected = False
            return False

    async def disconnect(self):
        """关闭Redis连接"""
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("redis_disconnected")

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[Union[int, timedelta]] = None,
    ) -> bool:
        """
        设置缓存值

        Args:
            key: 缓存键
            value: 缓存值 (JSON序列化)
            ttl: 过期时间（秒或timedelta对象）, None表示永不过期
        """
        try:
            ex = None
            if ttl is not None:
                ex = int(ttl.total_seconds()) if isinstance(ttl, timedelta) else ttl

            result = await self.client.set(key, json.dumps(value, ensure_ascii=False), ex=ex)
            logger.debug("cache_set", key=key, ttl=ex)
            return bool(result)

        except Exception as e:
            logger.error("cache_set_failed", key=key, error=str(e))
            raise CacheError(f"Failed to set cache: {e}", "set")

    async def get(self, key: str, default: Any = None) -> Any:
        """获取缓存值"""
        try:
            value = await self.client.get(key)
        except Exception as e:
            logger.error("cache_get_failed", key=key, error=str(e))
            raise CacheError(f"Failed to get cache: {e}", "get")

        if value is None:
            logger.debug("cache_miss", key=key)
            return default

        try:
            result = json.loads(value)
        except json.JSONDecodeError:
            # 如果不是有效JSON，返回原始字符串
            result = value
        logger.debug("cache_hit", key=key)
        return result

    async def clear_prefix(self, prefix: str) -> int:
        """删除以 prefix 开头的所有键 (SCAN, not KEYS, to avoid blocking Redis)"""
        try:
            deleted = 0
            batch = []
            async for key in self.client.scan_iter(match=f"{prefix}*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    deleted += await self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self.client.delete(*batch)

            logger.info("cache_prefix_cleared", prefix=prefix, count=deleted)
            return deleted

        except Exception as e:
            logger.error("cache_prefix_clear_failed", prefix=prefix, error=str(e))
            raise CacheError(f"Failed to clear prefix: {e}", "clear_prefix")


class RedisCache(CacheStore):
    """Redis-backed CacheStore. Errors surface as CacheError; callers decide how to degrade."""

    def __init__(self, repo: Optional[RedisRepository] = None):
        self.repo = repo or RedisRepository()

    async def get(self, key: str) -> Optional[Any]:
        return await self.repo.get(key, default=None)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self.repo.set(key, value, ttl=ttl)

    async def delete_by_prefix(self, prefix: str) -> int:
        return await self.repo.clear_prefix(prefix)

    async def close(self) -> None:
        await self.repo.disconnect()
