import json

import httpx
import pytest

from application.services.order_service import OrderService
from domain.order.entity import OrderDraft, OrderLine
from infrastructure.cache.keys import OrderKeys
from infrastructure.cache.query_cache import QueryCache
from infrastructure.external.api_clients.base import APIError


def draft(user_id=None) -> OrderDraft:
    return OrderDraft(
        subtotal=5000,
        tax=1000,
        total=6000,
        customer_email="aline@example.com",
        customer_first_name="Aline",
        customer_last_name="Uwase",
        delivery_address="KG 11 Ave",
        delivery_city="Kigali",
        payment_method="cash_on_delivery",
        user_id=user_id,
        items=[OrderLine(product_id="p1", product_name="Kitenge", price=2500, quantity=2)],
    )


@pytest.fixture
def cache():
    return QueryCache()


@pytest.fixture
def make_service(make_backend_client, cache, idempotency):
    def _make():
        return OrderService(make_backend_client(max_retries=0), cache, idempotency)

    return _make


@pytest.mark.asyncio
async def test_get_order_is_cached_and_snake_cased(make_service, backend):
    backend.on("GET", "/orders/o1", httpx.Response(200, json={"data": {"id": "o1", "orderNumber": "NM-1001"}}))
    service = make_service()

    first = await service.get_order("o1")
    second = await service.get_order("o1")

    assert first["order_number"] == "NM-1001"
    assert second is first
    assert len(backend.calls("GET", "/orders/o1")) == 1


@pytest.mark.asyncio
async def test_create_order_claims_reference(make_service, backend, cache, idempotency):
    backend.on("POST", "/orders", httpx.Response(201, json={"data": {"id": "o2", "orderNumber": "NM-1002"}}))
    cache.set(OrderKeys.list({"page": 1}), [])
    cache.set(OrderKeys.user_orders("u1", {"page": 1}), [])
    service = make_service()

    order = await service.create_order(draft(user_id="u1"), idempotency_key="R2")

    assert order["id"] == "o2"
    assert await idempotency.get("R2") == {"orderId": "o2", "orderNumber": "NM-1002"}
    assert OrderKeys.list({"page": 1}) not in cache
    assert OrderKeys.user_orders("u1", {"page": 1}) not in cache
    assert cache.get(OrderKeys.detail("o2"))["order_number"] == "NM-1002"

    [call] = backend.calls("POST", "/orders")
    assert call.headers["Idempotency-Key"] == "R2"
    body = json.loads(call.content)
    assert body["order"]["customer_email"] == "aline@example.com"
    assert body["items"][0]["total"] == 5000


@pytest.mark.asyncio
async def test_create_order_returns_recorded_order(make_service, backend, idempotency):
    await idempotency.claim("R1", {"orderId": "o1", "orderNumber": "NM-1001"})
    backend.on("GET", "/orders/o1", httpx.Response(200, json={"id": "o1", "orderNumber": "NM-1001"}))
    service = make_service()

    order = await service.create_order(draft(), idempotency_key="R1")

    assert order["id"] == "o1"
    assert backend.calls("POST", "/orders") == []


@pytest.mark.asyncio
async def test_status_update_rolls_back_on_failure(make_service, backend, cache):
    cache.set(OrderKeys.detail("o1"), {"id": "o1", "status": "pending"})
    cache.set(OrderKeys.list(), [{"id": "o1", "status": "pending"}, {"id": "o2", "status": "pending"}])
    seen = []

    def reject(request):
        seen.append(cache.get(OrderKeys.detail("o1"))["status"])
        return httpx.Response(500, json={"message": "Database unavailable"})

    backend.on("PATCH", "/orders/admin/o1/status", reject)
    service = make_service()

    with pytest.raises(APIError) as exc_info:
        await service.update_status("o1", "delivered")

    assert exc_info.value.message == "Database unavailable"
    assert seen == ["delivered"]
    assert cache.get(OrderKeys.detail("o1"))["status"] == "pending"
    assert [o["status"] for o in cache.get(OrderKeys.list())] == ["pending", "pending"]


@pytest.mark.asyncio
async def test_status_update_replaces_projection(make_service, backend, cache):
    cache.set(OrderKeys.list(), [{"id": "o1", "status": "pending"}])
    cache.set(OrderKeys.stats(), {"pending": 1})
    backend.on(
        "PATCH",
        "/orders/admin/o1/status",
        httpx.Response(200, json={"data": {"id": "o1", "status": "delivered", "deliveredAt": "2024-05-01T10:00:00Z"}}),
    )
    service = make_service()

    updated = await service.update_status("o1", "delivered")

    assert updated["delivered_at"] == "2024-05-01T10:00:00Z"
    assert cache.get(OrderKeys.detail("o1"))["status"] == "delivered"
    assert OrderKeys.list() not in cache
    assert OrderKeys.stats() not in cache


@pytest.mark.asyncio
async def test_item_refund_failure_rolls_back_and_invalidates(make_service, backend, cache):
    cache.set(OrderKeys.detail("o1"), {"id": "o1", "items": [{"id": "i1", "refund_requested": False}]})
    seen = []

    def reject(request):
        seen.append(cache.get(OrderKeys.detail("o1"))["items"][0]["refund_status"])
        return httpx.Response(400, json={"message": "Refund window closed"})

    backend.on("POST", "/orders/items/i1/refund", reject)
    service = make_service()

    with pytest.raises(APIError):
        await service.request_item_refund("i1", "Wrong size")

    assert seen == ["requested"]
    assert OrderKeys.detail("o1") not in cache


@pytest.mark.asyncio
async def test_item_refund_invalidates_only_its_order(make_service, backend, cache):
    cache.set(OrderKeys.detail("o1"), {"id": "o1", "items": [{"id": "i1"}]})
    cache.set(OrderKeys.detail("o2"), {"id": "o2", "items": []})
    backend.on("POST", "/orders/items/i1/refund", httpx.Response(200, json={"data": {"id": "i1", "order_id": "o1"}}))
    service = make_service()

    result = await service.request_item_refund("i1", "Wrong size")

    assert result == {"id": "i1", "order_id": "o1"}
    assert OrderKeys.detail("o1") not in cache
    assert OrderKeys.detail("o2") in cache


@pytest.mark.asyncio
async def test_refund_response_invalidates_all_orders(make_service, backend, cache):
    cache.set(OrderKeys.detail("o1"), {"id": "o1"})
    cache.set(OrderKeys.stats(), {})
    backend.on("POST", "/orders/admin/o1/refund/respond", httpx.Response(200, json={"id": "o1", "refundStatus": "approved"}))
    service = make_service()

    order = await service.respond_order_refund("o1", approve=True)

    assert order["refund_status"] == "approved"
    assert json.loads(backend.calls("POST", "/orders/admin/o1/refund/respond")[0].content) == {"approve": True}
    assert list(cache.entries()) == []
