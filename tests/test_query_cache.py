import pytest

from infrastructure.cache.idempotency import InMemoryIdempotencyStore
from infrastructure.cache.keys import OrderKeys, TransactionKeys
from infrastructure.cache.query_cache import QueryCache


def test_list_keys_ignore_option_order_and_empty_values():
    assert OrderKeys.list({"page": 1, "status": "pending"}) == OrderKeys.list({"status": "pending", "page": 1})
    assert OrderKeys.list({"page": 1, "search": None}) == OrderKeys.list({"page": 1})


def test_invalidate_prefix_only_touches_matching_entries():
    cache = QueryCache()
    cache.set(OrderKeys.list({"page": 1}), ["a"])
    cache.set(OrderKeys.list({"page": 2}), ["b"])
    cache.set(OrderKeys.detail("o1"), {"id": "o1"})
    cache.set(TransactionKeys.lists(), [])

    assert cache.invalidate(OrderKeys.lists()) == 2

    assert OrderKeys.list({"page": 1}) not in cache
    assert OrderKeys.detail("o1") in cache
    assert TransactionKeys.lists() in cache


def test_user_orders_prefix_covers_every_variant():
    cache = QueryCache()
    cache.set(OrderKeys.user_orders("u1", {"page": 1}), [])
    cache.set(OrderKeys.user_orders("u1", {"page": 2}), [])
    cache.set(OrderKeys.user_orders("u2", {"page": 1}), [])

    assert cache.invalidate(OrderKeys.user_orders("u1")) == 2
    assert OrderKeys.user_orders("u2", {"page": 1}) in cache


@pytest.mark.asyncio
async def test_fetch_loads_once():
    cache = QueryCache()
    loads = []

    async def loader():
        loads.append(1)
        return {"id": "o1"}

    first = await cache.fetch(OrderKeys.detail("o1"), loader)
    second = await cache.fetch(OrderKeys.detail("o1"), loader)

    assert first == second == {"id": "o1"}
    assert len(loads) == 1


def test_snapshot_and_restore():
    cache = QueryCache()
    cache.set(OrderKeys.detail("o1"), {"id": "o1", "status": "pending"})
    cache.set(OrderKeys.stats(), {"total": 1})

    previous = cache.snapshot(OrderKeys.details())
    cache.set(OrderKeys.detail("o1"), {"id": "o1", "status": "delivered"})
    cache.restore(previous)

    assert cache.get(OrderKeys.detail("o1"))["status"] == "pending"
    assert list(previous) == [OrderKeys.detail("o1")]


@pytest.mark.asyncio
async def test_idempotency_store_sweeps_expired_claims():
    now = [0.0]
    store = InMemoryIdempotencyStore(ttl_seconds=1, clock=lambda: now[0])
    for i in range(1000):
        assert await store.claim(f"REF-{i}", {"orderId": f"o{i}"})
    assert len(store) == 1000

    now[0] = 10.0
    assert await store.claim("REF-late", {"orderId": "late"})

    assert len(store) == 1
    assert await store.get("REF-0") is None
    assert await store.get("REF-late") == {"orderId": "late"}


@pytest.mark.asyncio
async def test_idempotency_store_rejects_live_duplicate():
    now = [0.0]
    store = InMemoryIdempotencyStore(ttl_seconds=5, clock=lambda: now[0])
    assert await store.claim("REF-1", {"orderId": "o1"})
    assert not await store.claim("REF-1", {"orderId": "o2"})

    now[0] = 5.0
    assert await store.claim("REF-1", {"orderId": "o2"})
    assert (await store.get("REF-1"))["orderId"] == "o2"
