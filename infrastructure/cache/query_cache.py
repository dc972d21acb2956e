"""
客户端查询缓存

进程内缓存，按元组键存储查询结果，支持：
- 前缀失效（invalidate）
- 乐观更新前的快照与回滚（snapshot / restore）
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Tuple

from core.logging_config import get_logger
from infrastructure.cache.keys import QueryKey

logger = get_logger(__name__)


def _matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


class QueryCache:
    """按键前缀组织的查询结果缓存"""

    def __init__(self) -> None:
        self._data: Dict[QueryKey, Any] = {}
        self._lock = asyncio.Lock()

    def get(self, key: QueryKey) -> Any:
        return self._data.get(key)

    def set(self, key: QueryKey, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: QueryKey) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._data

    def entries(self, prefix: QueryKey = ()) -> Iterator[Tuple[QueryKey, Any]]:
        # 复制后迭代，调用方可在循环中 set
        for key, value in list(self._data.items()):
            if _matches(key, prefix):
                yield key, value

    async def fetch(self, key: QueryKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        """命中直接返回，否则调用 loader 并写入缓存"""
        if key in self._data:
            return self._data[key]
        async with self._lock:
            if key not in self._data:
                self._data[key] = await loader()
            return self._data[key]

    def invalidate(self, prefix: QueryKey) -> int:
        """删除前缀下的全部条目，下次读取时重新加载"""
        stale: List[QueryKey] = [key for key, _ in self.entries(prefix)]
        for key in stale:
            del self._data[key]
        if stale:
            logger.debug("query_cache_invalidated", prefix=list(map(str, prefix)), count=len(stale))
        return len(stale)

    def snapshot(self, *prefixes: QueryKey) -> Dict[QueryKey, Any]:
        """记录前缀下的当前值，供乐观更新失败时回滚"""
        captured: Dict[QueryKey, Any] = {}
        for prefix in prefixes or ((),):
            captured.update(dict(self.entries(prefix)))
        return captured

    def restore(self, snapshot: Dict[QueryKey, Any]) -> None:
        for key, value in snapshot.items():
            self._data[key] = value
