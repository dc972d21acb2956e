"""
后端调用的 HTTP 基础设施

网关的所有出站请求（Nihemart 后端、本服务的支付代理）都经过 BaseAPIClient：
- 只对幂等方法做有限次重试，发起支付这类 POST 绝不重放
- 非 2xx 响应按状态码映射为 APIError 子类，响应体保留在异常上供调用方转发
- 认证器存在时附带 Bearer 令牌，401 后刷新并重放一次
"""
import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Type

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger

logger = get_logger(__name__)


IDEMPOTENT_METHODS = frozenset({"GET", "PUT", "DELETE", "HEAD", "OPTIONS"})
TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})

USER_AGENT = "Nihemart-Gateway/1.0"


@dataclass
class APIResponse:
    """一次后端调用的结果；``data`` 仅在响应为 JSON 时有值"""
    status_code: int
    data: Any = None
    content: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0

    @property
    def request_id(self) -> Optional[str]:
        return self.headers.get("x-request-id")

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        if self.data is not None:
            return self.data
        return json.loads(self.content)

    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class APIError(Exception):
    """
    后端调用失败

    ``status_code`` 为 None 表示请求没有拿到响应（网络错误或超时）。
    """

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[APIResponse] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response

    @property
    def request_id(self) -> Optional[str]:
        return self.response.request_id if self.response is not None else None

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (HTTP {self.status_code})"


class AuthenticationError(APIError):
    """401/403"""


class NotFoundError(APIError):
    pass


class ConflictError(APIError):
    """409，例如支付已关联到订单"""


class RateLimitError(APIError):
    pass


class ServerError(APIError):
    pass


_ERROR_TYPES: Dict[int, Type[APIError]] = {
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    409: ConflictError,
    429: RateLimitError,
}


class _TransientStatus(Exception):
    """内部信号：可重试的状态码，重试耗尽后再转换为 APIError"""

    def __init__(self, response: APIResponse):
        super().__init__(response.status_code)
        self.response = response


class Authenticator(Protocol):
    """Supplies the bearer token and renews it when the backend rejects it."""

    async def access_token(self) -> Optional[str]: ...

    async def refresh(self) -> bool: ...


def error_for(response: APIResponse) -> APIError:
    status = response.status_code
    error_type = _ERROR_TYPES.get(status) or (ServerError if status >= 500 else APIError)
    return error_type(
        BaseAPIClient.error_message(response, f"Request failed with status {status}"),
        status_code=status,
        response=response,
    )


def _retry_after_seconds(response: APIResponse) -> Optional[float]:
    value = response.headers.get("retry-after")
    try:
        return float(value) if value else None
    except ValueError:
        return None


class BaseAPIClient:
    """
    出站 REST 客户端基类

    子类只需要声明具体端点；重试、错误映射、认证和日志都在这里完成。
    ``transport`` 用于在测试中注入 ``httpx.MockTransport``。
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        authenticator: Optional[Authenticator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        debug: bool = False,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.authenticator = authenticator
        self.debug = debug
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if auth_token:
            # 服务间或会话令牌：固定附带，认证器存在时会被覆盖
            self.default_headers["Authorization"] = f"Bearer {auth_token}"
        if headers:
            self.default_headers.update(headers)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @staticmethod
    def error_message(response: APIResponse, default: str) -> str:
        """后端错误体的消息字段，优先级 message > error > detail"""
        data = response.data
        if isinstance(data, dict):
            for key in ("message", "error", "detail"):
                value = data.get(key)
                if isinstance(value, str) and value:
                    return value
        return default

    async def _headers_for(self, headers: Optional[Dict[str, str]], authenticate: bool) -> Dict[str, str]:
        merged = dict(self.default_headers)
        if authenticate and self.authenticator is not None:
            token = await self.authenticator.access_token()
            if token:
                merged["Authorization"] = f"Bearer {token}"
        if headers:
            merged.update(headers)
        return merged

    async def _exchange(self, method: str, url: str, **request_kwargs) -> APIResponse:
        started = time.perf_counter()
        raw = await self._http().request(method, url, **request_kwargs)
        data = None
        if "application/json" in raw.headers.get("content-type", ""):
            try:
                data = raw.json()
            except ValueError:
                data = None
        response = APIResponse(
            status_code=raw.status_code,
            data=data,
            content=raw.content,
            headers=dict(raw.headers),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        if self.debug:
            logger.debug(
                "api_response",
                method=method,
                url=url,
                status_code=response.status_code,
                elapsed_ms=response.elapsed_ms,
                request_id=response.request_id,
            )
        return response

    def _log_retry(self, method: str, url: str):
        def _log(state: RetryCallState) -> None:
            outcome = state.outcome
            error = outcome.exception() if outcome is not None and outcome.failed else None
            logger.warning(
                "api_request_retrying",
                method=method,
                url=url,
                attempt=state.attempt_number,
                status_code=error.response.status_code if isinstance(error, _TransientStatus) else None,
                error=None if isinstance(error, _TransientStatus) else str(error),
            )
        return _log

    async def _send(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        authenticate: bool = True,
    ) -> APIResponse:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        request_kwargs = {
            "params": params,
            "json": json_data,
            "headers": await self._headers_for(headers, authenticate),
        }
        if self.debug:
            logger.debug("api_request", method=method, url=url, params=params)

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1 if method in IDEMPOTENT_METHODS else 1),
            wait=wait_exponential(multiplier=self.retry_delay, min=self.retry_delay, max=self.retry_delay * 8),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, _TransientStatus)),
            before_sleep=self._log_retry(method, url),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._exchange(method, url, **request_kwargs)
                    if response.status_code in TRANSIENT_STATUSES:
                        delay = _retry_after_seconds(response) if response.status_code == 429 else None
                        if delay:
                            await asyncio.sleep(delay)
                        raise _TransientStatus(response)
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.NetworkError as exc:
            raise APIError(f"Network error: {exc}") from exc
        except _TransientStatus as exc:
            raise error_for(exc.response) from None

        if not response.ok:
            raise error_for(response)
        return response

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        authenticate: bool = True,
    ) -> APIResponse:
        """
        发送请求

        Args:
            method: HTTP 方法
            endpoint: 相对 base_url 的路径
            params: 查询参数，值为 None 的键会被丢弃
            json_data: 请求体，pydantic 模型按 JSON 模式导出
            headers: 额外请求头
            authenticate: False 时跳过认证器（固定 auth_token 仍会附带）

        Raises:
            APIError: 非 2xx 响应或网络失败；401 在认证器刷新成功后重放一次
        """
        method = method.upper()
        if isinstance(json_data, BaseModel):
            json_data = json_data.model_dump(exclude_unset=True, mode="json")
        if params:
            params = {key: value for key, value in params.items() if value is not None}

        send = dict(params=params, json_data=json_data, headers=headers, authenticate=authenticate)
        try:
            return await self._send(method, endpoint, **send)
        except AuthenticationError as exc:
            if not authenticate or exc.status_code != 401 or self.authenticator is None:
                raise
            if not await self.authenticator.refresh():
                raise
            logger.info("api_request_replayed_after_refresh", method=method, endpoint=endpoint)
            return await self._send(method, endpoint, **send)

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("POST", endpoint, **kwargs)

    async def patch(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("PATCH", endpoint, **kwargs)

    async def delete(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("DELETE", endpoint, **kwargs)
