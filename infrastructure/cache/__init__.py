"""缓存层对外暴露的接口"""
from .redis_cache import (
    RedisCache,
    init_redis_cache,
    shutdown_redis_cache,
    get_redis_cache,
)
from .idempotency import InMemoryIdempotencyStore, RedisIdempotencyStore, get_idempotency_store
from .keys import OrderKeys, SettingsKeys, TransactionKeys
from .query_cache import QueryCache

__all__ = [
    "RedisCache",
    "init_redis_cache",
    "shutdown_redis_cache",
    "get_redis_cache",
    "InMemoryIdempotencyStore",
    "RedisIdempotencyStore",
    "get_idempotency_store",
    "OrderKeys",
    "SettingsKeys",
    "TransactionKeys",
    "QueryCache",
]
