"""幂等键存储：进程内实现与 Redis 实现"""
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Tuple

from core.config import settings
from infrastructure.cache.redis_cache import RedisCache, get_redis_cache

# 订单与支付引用的对应关系保留一天
DEFAULT_TTL_SECONDS = 24 * 60 * 60
KEY_PREFIX = "idempotency"


class InMemoryIdempotencyStore:
    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    def _live(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        return self._live(key)

    async def claim(self, key: str, value: Dict[str, Any]) -> bool:
        now = self._clock()
        # 只有写入会增长字典，过期项在这里统一清理
        self._purge_expired(now)
        if key in self._entries:
            return False
        self._entries[key] = (now + self._ttl, dict(value))
        return True


class RedisIdempotencyStore:
    def __init__(self, cache: RedisCache, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._cache = cache
        self._ttl = ttl_seconds

    @staticmethod
    def _key(key: str) -> str:
        return f"{KEY_PREFIX}:{key}"

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = await self._cache.get(self._key(key))
        return value if isinstance(value, dict) else None

    async def claim(self, key: str, value: Dict[str, Any]) -> bool:
        return await self._cache.add(self._key(key), value, ttl=self._ttl)


_memory_store = InMemoryIdempotencyStore()


def get_idempotency_store():
    """Redis 已初始化时使用 Redis，否则退回进程内存储"""
    cache = get_redis_cache() if settings.redis.url else None
    if cache is not None:
        return RedisIdempotencyStore(cache)
    return _memory_store
