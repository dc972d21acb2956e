"""
Nihemart 后端 REST 客户端

后端负责订单、支付会话与系统设置的持久化；本客户端仅做调用封装，
响应体原样返回（camelCase），由领域视图层转换。
"""
from typing import Any, Dict, Optional

from application.ports.session import TokenStore
from application.services.token_service import TokenService
from infrastructure.external.api_clients.base import APIError, APIResponse, Authenticator, BaseAPIClient
from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


class BackendClient(BaseAPIClient):
    """后端 API 客户端"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        auth_token: Optional[str] = None,
        authenticator: Optional[Authenticator] = None,
        **kwargs
    ):
        kwargs.setdefault("timeout", settings.backend.timeout)
        kwargs.setdefault("max_retries", settings.backend.max_retries)
        kwargs.setdefault("retry_delay", settings.backend.retry_delay)
        kwargs.setdefault("debug", settings.DEBUG)
        super().__init__(
            base_url=base_url or settings.API_BASE_URL,
            auth_token=auth_token,
            authenticator=authenticator,
            **kwargs
        )

    # ========== 认证 ==========

    async def refresh_session(self, refresh_token: str) -> Optional[Dict[str, Any]]:
        """
        刷新令牌

        Returns:
            ``{accessToken, refreshToken, user}``；失败返回 None
        """
        try:
            response = await self.post(
                "/auth/refresh",
                json_data={"refreshToken": refresh_token},
                authenticate=False,
            )
        except APIError as exc:
            logger.warning("auth_refresh_rejected", status_code=exc.status_code, error=exc.message)
            return None
        data = response.data if isinstance(response.data, dict) else {}
        return data.get("data") if isinstance(data.get("data"), dict) else data

    # ========== 支付 ==========

    async def initiate_payment(self, payload: Dict[str, Any]) -> APIResponse:
        return await self.post("/payments/initiate", json_data=payload)

    async def payment_status(self, transaction_id: Optional[str], reference: Optional[str]) -> APIResponse:
        return await self.post(
            "/payments/status",
            json_data={"transactionId": transaction_id, "reference": reference},
        )

    async def record_payment_timeout(self, payment_id: str, reason: str) -> APIResponse:
        return await self.post("/payments/timeout", json_data={"paymentId": payment_id, "reason": reason})

    async def link_payment(self, order_id: str, reference: str) -> APIResponse:
        return await self.post("/payments/link", json_data={"orderId": order_id, "reference": reference})

    async def get_payment(self, payment_id: str) -> APIResponse:
        return await self.get(f"/payments/{payment_id}")

    async def get_payment_session(self, reference: str) -> APIResponse:
        return await self.get(f"/payments/session/{reference}")

    async def list_order_payments(self, order_id: str) -> APIResponse:
        return await self.get(f"/payments/order/{order_id}")

    async def list_payments(self, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        """管理端支付列表，可按 status/from/to 过滤"""
        return await self.get("/payments", params=params)

    async def forward_webhook(self, payload: Dict[str, Any]) -> APIResponse:
        """原样转发网关回调"""
        return await self.post("/webhooks/kpay", json_data=payload, authenticate=False)

    # ========== 订单 ==========

    async def list_orders(self, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        return await self.get("/orders", params=params)

    async def list_all_orders(self, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        return await self.get("/orders/admin/all", params=params)

    async def get_order(self, order_id: str) -> APIResponse:
        return await self.get(f"/orders/{order_id}")

    async def create_order(self, payload: Dict[str, Any], *, idempotency_key: Optional[str] = None) -> APIResponse:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        return await self.post("/orders", json_data=payload, headers=headers)

    async def update_order_status(self, order_id: str, status: str) -> APIResponse:
        return await self.patch(f"/orders/admin/{order_id}/status", json_data={"status": status})

    async def request_item_refund(self, item_id: str, reason: str) -> APIResponse:
        return await self.post(f"/orders/items/{item_id}/refund", json_data={"reason": reason})

    async def request_order_refund(self, order_id: str, reason: str) -> APIResponse:
        return await self.post(f"/orders/{order_id}/refund", json_data={"reason": reason})

    async def cancel_item_refund(self, item_id: str) -> APIResponse:
        return await self.post(f"/orders/items/{item_id}/refund/cancel")

    async def cancel_order_refund(self, order_id: str) -> APIResponse:
        return await self.post(f"/orders/{order_id}/refund/cancel")

    async def respond_item_refund(self, item_id: str, approve: bool) -> APIResponse:
        return await self.post(f"/orders/admin/items/{item_id}/refund/respond", json_data={"approve": approve})

    async def respond_order_refund(self, order_id: str, approve: bool) -> APIResponse:
        return await self.post(f"/orders/admin/{order_id}/refund/respond", json_data={"approve": approve})

    # ========== 系统设置 ==========

    async def get_orders_enabled(self) -> APIResponse:
        return await self.get("/settings/orders-enabled", authenticate=False)

    async def set_orders_enabled(self, payload: Any) -> APIResponse:
        return await self.post("/settings/orders-enabled", json_data=payload)

    async def clear_orders_enabled(self) -> APIResponse:
        return await self.delete("/settings/orders-enabled")

    async def apply_orders_schedule(self, enabled: bool, service_key: str) -> APIResponse:
        """调度任务写入营业时段开关（服务密钥认证）"""
        return await self.post(
            "/settings/orders-enabled/scheduler",
            json_data={"enabled": enabled},
            headers={"X-Service-Key": service_key},
            authenticate=False,
        )


def create_session_backend_client(token_store: TokenStore, **kwargs) -> BackendClient:
    """创建绑定客户端会话的后端客户端：令牌来自 token_store，过期自动刷新"""
    client = BackendClient(**kwargs)
    client.authenticator = TokenService(token_store, refresh_call=client.refresh_session)
    return client
