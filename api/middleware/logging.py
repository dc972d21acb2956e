"""
请求/响应日志中间件

记录每个代理请求的开始与结束（状态码、耗时）。请求体按开关记录，
令牌与服务密钥整体脱敏，手机号/邮箱只保留末尾几位，网关回调的
交易号原样保留以便对账。
"""
import json
import time
from typing import Any
from urllib.parse import parse_qs

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

SECRET_FIELDS = {
    "token", "accesstoken", "refreshtoken", "access_token", "refresh_token",
    "password", "secret", "apikey", "api_key", "x-service-key", "servicekey",
}
PARTIAL_FIELDS = {
    "customerphone", "customernumber", "customer_phone", "phone", "msisdn",
    "customeremail", "customer_email", "email",
}


def mask_partial(value: Any, keep: int = 3) -> Any:
    if not isinstance(value, str) or len(value) <= keep:
        return value
    return "*" * (len(value) - keep) + value[-keep:]


def sanitize(data: Any) -> Any:
    if isinstance(data, dict):
        cleaned = {}
        for key, value in data.items():
            lowered = str(key).lower()
            if lowered in SECRET_FIELDS:
                cleaned[key] = "***"
            elif lowered in PARTIAL_FIELDS:
                cleaned[key] = mask_partial(value)
            else:
                cleaned[key] = sanitize(value)
        return cleaned
    if isinstance(data, list):
        return [sanitize(item) for item in data]
    return data


class LoggingMiddleware(BaseHTTPMiddleware):

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.enable_body_log_default: bool = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_log_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        start_time = time.time()
        request_info = await self._request_info(request)
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.time() - start_time,
                error=str(exc),
                error_type=type(exc).__name__,
                **request_info,
                exc_info=True,
            )
            raise

        duration = time.time() - start_time
        self._log_response(response, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _request_info(self, request: Request) -> dict:
        info: dict = {
            "method": request.method,
            "path": request.url.path,
            "query_params": sanitize(dict(request.query_params)),
        }
        if request.method in ("POST", "PUT", "PATCH") and self._should_log_body(request):
            body = await self._body_snippet(request)
            if body is not None:
                info["body"] = body
        user_agent = request.headers.get("User-Agent")
        if user_agent:
            info["user_agent"] = user_agent
        return info

    def _should_log_body(self, request: Request) -> bool:
        # X-Log-Body: true/false 覆盖默认
        header = (request.headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return bool(self.enable_body_log_default and settings.DEBUG)

    async def _body_snippet(self, request: Request) -> Any:
        body = await request.body()
        if not body:
            return None

        text = body[: self.max_body_log_bytes].decode("utf-8", errors="ignore")
        content_type = request.headers.get("content-type", "").lower()
        if "application/json" in content_type:
            try:
                return sanitize(json.loads(text))
            except ValueError:
                return text
        if "application/x-www-form-urlencoded" in content_type:
            return sanitize({k: v if len(v) > 1 else v[0] for k, v in parse_qs(text).items()})
        return text

    def _log_response(self, response: Response, duration: float, request_info: dict):
        log_data = {"status_code": response.status_code, "duration": duration, **request_info}
        if response.status_code < 400:
            logger.info("request_completed", **log_data)
        elif response.status_code < 500:
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)
