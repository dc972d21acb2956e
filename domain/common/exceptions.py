"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。

The storefront proxies answer with small, stable JSON bodies rather than the
internal envelope: ``{"error": ...}`` or
``{"success": false, "error": ..., "technicalError": ...}``. Each exception
carries enough to render one of those shapes.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
        status_code: Optional[int] = None,
        technical_error: Optional[str] = None,
        with_success_flag: bool = False,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        # 显式 HTTP 状态（透传后端状态时使用），为空则按业务码映射
        self.status_code = status_code
        self.technical_error = technical_error
        self.with_success_flag = with_success_flag
        super().__init__(self.message)


class ProxyValidationError(BusinessException):
    """Missing or malformed request fields on a proxy endpoint (400)."""

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(
            code=BusinessCode.PARAM_MISSING,
            message=message,
            error_type="ValidationError",
            field=field,
            message_key=message,
            status_code=400,
        )


class UpstreamServiceError(BusinessException):
    """The backend answered with a non-2xx status; relay its status and message."""

    def __init__(
        self,
        message: str,
        status_code: int,
        *,
        with_success_flag: bool = True,
        details: Optional[dict] = None,
    ):
        super().__init__(
            code=BusinessCode.UPSTREAM_ERROR,
            message=message,
            error_type="UpstreamError",
            details=details,
            status_code=status_code,
            with_success_flag=with_success_flag,
        )


class AuthenticationRequiredError(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message="Unauthorized",
            error_type="Unauthorized",
            message_key="Unauthorized",
            status_code=401,
        )


class WebhookRelayError(BusinessException):
    """Forwarding the gateway callback to the backend failed."""

    def __init__(self, status_code: int = 500):
        super().__init__(
            code=BusinessCode.UPSTREAM_ERROR,
            message="Webhook processing failed",
            error_type="WebhookRelayError",
            message_key="Webhook processing failed",
            status_code=status_code,
        )
