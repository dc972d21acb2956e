"""Redis缓存实现（幂等键跨进程共享时使用）"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from redis import asyncio as aioredis

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


def _json_dumps(value: Any) -> str:
    return json.dumps(value, default=str)


def _json_loads(value: Optional[str]) -> Any:
    if value is None:
        return None
    return json.loads(value)


class RedisCache:
    """带命名空间的 JSON 键值缓存"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    def _expire(self, ttl: Optional[int]) -> Optional[int]:
        expire = settings.redis.default_ttl if ttl is None else ttl
        return expire if expire and expire > 0 else None

    async def get(self, key: str) -> Any:
        return _json_loads(await self._client.get(self._format_key(key)))

    async def add(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """仅当键不存在时写入（SET NX），返回是否写入成功"""
        written = await self._client.set(
            self._format_key(key),
            _json_dumps(value),
            ex=self._expire(ttl),
            nx=True,
        )
        return bool(written)


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisCache] = None
_lock = asyncio.Lock()


async def init_redis_cache(namespace: Optional[str] = None) -> RedisCache:
    """连接 Redis 并 PING 确认可用；失败时关闭连接后抛出"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis缓存")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )

        try:
            await client.ping()
        except Exception:
            await client.aclose()
            raise
        _redis_client = client
        _cache_instance = RedisCache(client=client, namespace=namespace or settings.redis.namespace)
        logger.info("redis_cache_initialized", namespace=namespace or settings.redis.namespace)
        return _cache_instance


def get_redis_cache() -> Optional[RedisCache]:
    """获取全局Redis缓存实例（未初始化时为 None）"""
    return _cache_instance


async def shutdown_redis_cache() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _cache_instance = None
