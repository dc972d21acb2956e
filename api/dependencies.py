"""
API依赖项 - 请求会话、后端客户端与服务装配

每个请求构建一个 ``RequestSession``（Authorization 头或 ``auth-token``
Cookie），并据此创建携带令牌的后端客户端；请求结束时关闭客户端。
"""
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.ports.idempotency import IdempotencyStore
from application.services.order_service import OrderProxyService
from application.services.payment_proxy_service import PaymentProxyService
from application.services.settings_service import OrdersSettingsService
from application.services.transaction_service import TransactionService
from application.services.webhook_service import WebhookRelayService
from core.config import settings
from domain.common.exceptions import AuthenticationRequiredError
from infrastructure.cache.idempotency import get_idempotency_store
from infrastructure.external.api_clients.backend import BackendClient


AUTH_COOKIE = "auth-token"

http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="Backend JWT forwarded to the backend API",
    auto_error=False,
)


@dataclass(frozen=True)
class RequestSession:
    """一次请求的认证信息（仅透传，不在本服务校验签名）"""
    token: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return bool(self.token)


async def get_request_session(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> RequestSession:
    """Authorization: Bearer 优先，其次 auth-token Cookie"""
    if bearer and bearer.credentials:
        return RequestSession(token=bearer.credentials)
    return RequestSession(token=request.cookies.get(AUTH_COOKIE) or None)


async def require_session(session: RequestSession = Depends(get_request_session)) -> RequestSession:
    if not session.authenticated:
        raise AuthenticationRequiredError()
    return session


async def get_backend_client(
    request: Request,
    session: RequestSession = Depends(get_request_session),
) -> AsyncIterator[BackendClient]:
    request_id = getattr(request.state, "request_id", None)
    client = BackendClient(
        auth_token=session.token,
        headers={"X-Request-ID": request_id} if request_id else None,
    )
    try:
        yield client
    finally:
        await client.close()


def get_public_base_url(request: Request) -> str:
    """支付回跳地址的站点根：PUBLIC_BASE_URL，否则取请求地址"""
    return (settings.PUBLIC_BASE_URL or str(request.base_url)).rstrip("/")


def get_idempotency() -> IdempotencyStore:
    return get_idempotency_store()


async def get_payment_proxy_service(
    backend: BackendClient = Depends(get_backend_client),
    idempotency: IdempotencyStore = Depends(get_idempotency),
    public_base_url: str = Depends(get_public_base_url),
) -> PaymentProxyService:
    return PaymentProxyService(backend, idempotency, public_base_url)


async def get_webhook_service(backend: BackendClient = Depends(get_backend_client)) -> WebhookRelayService:
    return WebhookRelayService(backend)


async def get_transaction_service(backend: BackendClient = Depends(get_backend_client)) -> TransactionService:
    return TransactionService(backend)


async def get_orders_settings_service(backend: BackendClient = Depends(get_backend_client)) -> OrdersSettingsService:
    return OrdersSettingsService(backend)


async def get_order_proxy_service(backend: BackendClient = Depends(get_backend_client)) -> OrderProxyService:
    return OrderProxyService(backend)
