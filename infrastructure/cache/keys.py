"""
查询缓存键

Keys are tuples so that invalidating a prefix (e.g. ``OrderKeys.lists()``)
reaches every list variant beneath it. Option mappings are frozen into sorted
item tuples to stay hashable.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

QueryKey = Tuple[Any, ...]


def _freeze(options: Optional[Mapping[str, Any]]) -> Tuple[Tuple[str, Any], ...]:
    if not options:
        return ()
    return tuple(sorted((k, v) for k, v in options.items() if v is not None))


class OrderKeys:
    all: QueryKey = ("orders",)

    @classmethod
    def lists(cls) -> QueryKey:
        return (*cls.all, "list")

    @classmethod
    def list(cls, options: Optional[Mapping[str, Any]] = None) -> QueryKey:
        return (*cls.lists(), _freeze(options))

    @classmethod
    def details(cls) -> QueryKey:
        return (*cls.all, "detail")

    @classmethod
    def detail(cls, order_id: str) -> QueryKey:
        return (*cls.details(), order_id)

    @classmethod
    def stats(cls) -> QueryKey:
        return (*cls.all, "stats")

    @classmethod
    def user_orders(cls, user_id: str, options: Optional[Mapping[str, Any]] = None) -> QueryKey:
        base = (*cls.all, "user", user_id)
        return (*base, _freeze(options)) if options else base


class TransactionKeys:
    all: QueryKey = ("transactions",)
    counts: QueryKey = ("transactionCounts",)

    @classmethod
    def lists(cls) -> QueryKey:
        return (*cls.all, "list")

    @classmethod
    def list(cls, options: Optional[Mapping[str, Any]] = None) -> QueryKey:
        return (*cls.lists(), _freeze(options))

    @classmethod
    def details(cls) -> QueryKey:
        return (*cls.all, "detail")

    @classmethod
    def detail(cls, transaction_id: str) -> QueryKey:
        return (*cls.details(), transaction_id)

    @classmethod
    def stats(cls) -> QueryKey:
        return (*cls.all, "stats")


class SettingsKeys:
    orders_enabled: QueryKey = ("settings", "orders-enabled")
