import pickle
from typing import Any

from redis.asyncio import Redis, from_url

from app.core.config import settings
from app.core.logging import logger


class CacheService:
    """
    Redis 缓存服务

    目前承载 OAuth state 等一次性短期数据；值以 pickle 序列化，
    未配置 REDIS_URL 时所有操作退化为空操作（get 返回 None）。
    """

    def __init__(self):
        self._redis: Redis | None = None

    def init(self) -> None:
        if settings.REDIS_URL:
            self._redis = from_url(
                settings.REDIS_URL,
                encoding=settings.REDIS_ENCODING,
                decode_responses=False,  # 手动序列化
            )
            logger.info(f"Redis initialized at {settings.REDIS_URL}")
        else:
            logger.warning("REDIS_URL not set, cache will be disabled")

    async def close(self) -> None:
        if self._redis:
            await self._redis.close()
            logger.info("Redis connection closed")

    def _make_key(self, key: str) -> str:
        return f"{settings.CACHE_PREFIX}{key}"

    async def get(self, key: str) -> Any | None:
        if not self._redis:
            return None
        try:
            data = await self._redis.get(self._make_key(key))
            if data:
                return pickle.loads(data)
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
        return None

    async def set(self, key: str, value: Any, ttl: int | None = settings.CACHE_DEFAULT_TTL) -> bool:
        if not self._redis:
            return False
        try:
            return bool(await self._redis.set(self._make_key(key), pickle.dumps(value), ex=ttl))
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self._redis:
            return False
        try:
            await self._redis.delete(self._make_key(key))
            return True
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            return False

    async def pop(self, key: str) -> Any | None:
        """读取并删除，用于一次性 token（OAuth state）。"""
        value = await self.get(key)
        await self.delete(key)
        return value


cache = CacheService()
