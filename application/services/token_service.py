"""
令牌服务 - 客户端访问令牌的读取、过期判断与刷新

The backend issues the tokens; this side only inspects the ``exp`` claim
(without verifying the signature, which it cannot do) to refresh shortly
before expiry, and swaps in the rotated pair returned by ``/auth/refresh``.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import jwt

from application.ports.session import TokenStore
from core.config import settings
from core.logging_config import get_logger
from core.retry import RetryPolicy, exponential_backoff


logger = get_logger(__name__)

RefreshCall = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]


def decode_unverified(token: str) -> Optional[Dict[str, Any]]:
    """解码JWT载荷（不校验签名），格式非法时返回 None"""
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.PyJWTError:
        return None


def token_expiry(token: str) -> Optional[datetime]:
    payload = decode_unverified(token)
    if not payload or "exp" not in payload:
        return None
    try:
        return datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def is_token_expiring_soon(
    token: str,
    buffer_seconds: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """令牌将在 buffer 秒内过期（或无法解析）时返回 True"""
    expiry = token_expiry(token)
    if expiry is None:
        return True
    buffer = settings.backend.token_refresh_buffer_seconds if buffer_seconds is None else buffer_seconds
    current = now or datetime.now(timezone.utc)
    return (expiry - current).total_seconds() <= buffer


class TokenService:
    """
    令牌服务

    职责：
    1. 为每个请求提供访问令牌，临近过期时先刷新
    2. 收到 401 时刷新一次（并发请求共享同一次刷新）
    3. 刷新失败时清空本地会话
    """

    def __init__(
        self,
        store: TokenStore,
        refresh_call: RefreshCall,
        *,
        buffer_seconds: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._store = store
        self._refresh_call = refresh_call
        self._buffer_seconds = buffer_seconds
        self._retry_policy = retry_policy or RetryPolicy(
            name="token_refresh",
            max_attempts=2,
            backoff=exponential_backoff(0.5, 2.0),
            retry_on_result=lambda result: result is None,
        )
        self._lock = asyncio.Lock()

    async def access_token(self) -> Optional[str]:
        token = self._store.get_token()
        if not token:
            return None
        if self._store.get_refresh_token() and is_token_expiring_soon(token, self._buffer_seconds):
            if await self.refresh():
                return self._store.get_token()
        return token

    async def refresh(self) -> bool:
        stale = self._store.get_token()
        async with self._lock:
            # 等锁期间已被其他请求刷新
            current = self._store.get_token()
            if current and current != stale:
                return True

            refresh_token = self._store.get_refresh_token()
            if not refresh_token:
                return False

            result = await self._retry_policy.run(self._refresh_call, refresh_token)
            access = (result or {}).get("accessToken")
            if not access:
                logger.warning("token_refresh_failed")
                self._store.clear()
                return False

            self._store.set_token(access, result.get("refreshToken") or refresh_token)
            logger.info("token_refreshed")
            return True
