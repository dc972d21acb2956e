"""
订单服务

``OrderService`` runs next to the storefront: reads go through the query
cache, mutations project optimistically onto cached entries, roll back on
failure and invalidate the affected keys afterwards.
``OrderProxyService`` backs the ``/api/orders/{id}`` passthrough.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional

from application.ports.idempotency import IdempotencyStore
from core.logging_config import get_logger
from domain.order import projections
from domain.order.entity import OrderDraft
from domain.order.views import adapt_order_payload
from infrastructure.cache.keys import OrderKeys, QueryKey
from infrastructure.cache.query_cache import QueryCache
from infrastructure.external.api_clients.base import APIError, APIResponse, BaseAPIClient
from infrastructure.external.api_clients.backend import BackendClient
from domain.common.exceptions import UpstreamServiceError


logger = get_logger(__name__)


def _unwrap(body: Any) -> Any:
    """``{"data": {...}}`` / ``{"order": {...}}`` envelopes -> the order payload."""
    if isinstance(body, Mapping):
        if isinstance(body.get("data"), Mapping):
            return body["data"]
    return body


def _order_of(response: APIResponse) -> dict[str, Any]:
    adapted = adapt_order_payload(_unwrap(response.data))
    return adapted if isinstance(adapted, dict) else {}


class OrderService:
    def __init__(self, backend: BackendClient, cache: QueryCache, idempotency: IdempotencyStore):
        self._backend = backend
        self._cache = cache
        self._idempotency = idempotency

    # ========== 查询 ==========

    async def list_orders(self, options: Optional[dict[str, Any]] = None) -> Any:
        async def load():
            return adapt_order_payload((await self._backend.list_orders(options)).data)
        return await self._cache.fetch(OrderKeys.list(options), load)

    async def list_all_orders(self, options: Optional[dict[str, Any]] = None) -> Any:
        """管理端全部订单"""
        async def load():
            return adapt_order_payload((await self._backend.list_all_orders(options)).data)
        return await self._cache.fetch(OrderKeys.list({**(options or {}), "scope": "admin"}), load)

    async def user_orders(self, user_id: str, options: Optional[dict[str, Any]] = None) -> Any:
        async def load():
            return adapt_order_payload((await self._backend.list_orders({**(options or {}), "userId": user_id})).data)
        return await self._cache.fetch(OrderKeys.user_orders(user_id, options), load)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        async def load():
            return _order_of(await self._backend.get_order(order_id))
        return await self._cache.fetch(OrderKeys.detail(order_id), load)

    # ========== 创建 ==========

    async def create_order(
        self,
        draft: OrderDraft,
        *,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        创建订单

        同一幂等键（支付引用）只会创建一次：已登记时返回已有订单。
        """
        if idempotency_key:
            recorded = await self._idempotency.get(idempotency_key)
            if recorded and recorded.get("orderId"):
                logger.info("order_create_deduplicated", reference=idempotency_key, order_id=recorded["orderId"])
                return await self.get_order(str(recorded["orderId"]))

        response = await self._backend.create_order(draft.to_payload(), idempotency_key=idempotency_key)
        order = _order_of(response)
        order_id = order.get("id")
        logger.info("order_created", order_id=order_id, order_number=order.get("order_number"))

        if idempotency_key and order_id:
            await self._idempotency.claim(
                idempotency_key,
                {"orderId": order_id, "orderNumber": order.get("order_number")},
            )

        self._cache.invalidate(OrderKeys.lists())
        if order_id:
            self._cache.set(OrderKeys.detail(str(order_id)), order)
        if draft.user_id:
            self._cache.invalidate(OrderKeys.user_orders(draft.user_id))
        return order

    # ========== 变更（乐观更新） ==========

    def _project(self, prefixes: tuple[QueryKey, ...], projection: projections.Projection) -> dict:
        previous = self._cache.snapshot(*prefixes)
        for key, entry in previous.items():
            updated = projections.apply_to_entry(entry, projection)
            if updated is not None:
                self._cache.set(key, updated)
        return previous

    async def _mutate(
        self,
        name: str,
        prefixes: tuple[QueryKey, ...],
        projection: projections.Projection,
        call: Callable[[], Awaitable[APIResponse]],
        **log_fields: Any,
    ) -> APIResponse:
        previous = self._project(prefixes, projection)
        try:
            return await call()
        except APIError as exc:
            self._cache.restore(previous)
            logger.warning(f"{name}_rolled_back", status_code=exc.status_code, error=exc.message, **log_fields)
            raise

    async def update_status(
        self,
        order_id: str,
        status: str,
        additional_fields: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        response = await self._mutate(
            "order_status_update",
            (OrderKeys.all,),
            projections.set_status(order_id, status, additional_fields),
            lambda: self._backend.update_order_status(order_id, status),
            order_id=order_id,
        )
        updated = _order_of(response)
        self._cache.set(OrderKeys.detail(str(updated.get("id") or order_id)), updated)
        self._cache.invalidate(OrderKeys.lists())
        self._cache.invalidate(OrderKeys.stats())
        return updated

    async def _item_refund_mutation(
        self,
        name: str,
        item_id: str,
        fields: dict[str, Any],
        call: Callable[[], Awaitable[APIResponse]],
    ) -> Any:
        result: Any = None
        try:
            response = await self._mutate(
                name,
                (OrderKeys.details(), OrderKeys.lists()),
                projections.set_item_fields(item_id, fields),
                call,
                item_id=item_id,
            )
            result = _unwrap(response.data)
            return result
        finally:
            self._cache.invalidate(OrderKeys.lists())
            order_id = (result.get("order_id") or result.get("orderId")) if isinstance(result, Mapping) else None
            if order_id:
                self._cache.invalidate(OrderKeys.detail(str(order_id)))
            else:
                self._cache.invalidate(OrderKeys.details())

    async def request_item_refund(self, item_id: str, reason: str) -> Any:
        return await self._item_refund_mutation(
            "item_refund_request",
            item_id,
            projections.refund_requested_fields(reason),
            lambda: self._backend.request_item_refund(item_id, reason),
        )

    async def cancel_item_refund(self, item_id: str) -> Any:
        return await self._item_refund_mutation(
            "item_refund_cancel",
            item_id,
            projections.refund_cancelled_fields(),
            lambda: self._backend.cancel_item_refund(item_id),
        )

    async def _order_refund_mutation(
        self,
        name: str,
        order_id: str,
        fields: dict[str, Any],
        call: Callable[[], Awaitable[APIResponse]],
    ) -> dict[str, Any]:
        try:
            response = await self._mutate(
                name,
                (OrderKeys.details(), OrderKeys.lists()),
                projections.set_order_fields(order_id, fields),
                call,
                order_id=order_id,
            )
            return _order_of(response)
        finally:
            self._cache.invalidate(OrderKeys.lists())
            self._cache.invalidate(OrderKeys.detail(order_id))

    async def request_order_refund(self, order_id: str, reason: str) -> dict[str, Any]:
        return await self._order_refund_mutation(
            "order_refund_request",
            order_id,
            projections.refund_requested_fields(reason),
            lambda: self._backend.request_order_refund(order_id, reason),
        )

    async def cancel_order_refund(self, order_id: str) -> dict[str, Any]:
        return await self._order_refund_mutation(
            "order_refund_cancel",
            order_id,
            projections.refund_cancelled_fields(),
            lambda: self._backend.cancel_order_refund(order_id),
        )

    async def respond_item_refund(self, item_id: str, approve: bool) -> Any:
        try:
            response = await self._backend.respond_item_refund(item_id, approve)
        finally:
            self._cache.invalidate(OrderKeys.all)
        logger.info("item_refund_responded", item_id=item_id, approve=approve)
        return _unwrap(response.data)

    async def respond_order_refund(self, order_id: str, approve: bool) -> dict[str, Any]:
        try:
            response = await self._backend.respond_order_refund(order_id, approve)
        finally:
            self._cache.invalidate(OrderKeys.all)
        logger.info("order_refund_responded", order_id=order_id, approve=approve)
        return _order_of(response)


class OrderProxyService:
    """``GET /api/orders/{id}``：透传后端订单详情"""

    def __init__(self, backend: BackendClient):
        self._backend = backend

    async def get_order(self, order_id: str) -> Any:
        try:
            response = await self._backend.get_order(order_id)
        except APIError as exc:
            if exc.response is None or exc.status_code is None:
                raise
            logger.error("order_fetch_failed", order_id=order_id, status_code=exc.status_code, error=exc.message)
            message = BaseAPIClient.error_message(exc.response, "Failed to fetch order")
            raise UpstreamServiceError(message, exc.status_code, with_success_flag=False) from exc
        return response.data
