"""
响应体构造

Service endpoints (root, health) answer with the ``Response`` envelope.
Storefront proxy endpoints keep the flat JSON shapes the web client already
consumes; their error bodies come from ``proxy_error_body``.
"""
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from shared.codes import BusinessCode


T = TypeVar("T")


class Response(BaseModel, Generic[T]):
    code: int
    message: str
    data: Optional[T] = None


def success_response(data: Any = None, message: str = "Success", code: int = BusinessCode.SUCCESS) -> Response:
    return Response(code=code, message=message, data=data)


def proxy_error_body(
    message: str,
    *,
    with_success_flag: bool = False,
    technical_error: Optional[str] = None,
) -> dict:
    """
    代理接口的错误体

    Args:
        message: 面向用户的错误消息
        with_success_flag: 是否附带 ``success: false``（支付代理的约定）
        technical_error: 技术细节，仅在带 success 标记时输出

    Returns:
        ``{"error"}`` 或 ``{"success", "error", "technicalError"}``
    """
    if not with_success_flag:
        return {"error": message}
    body: dict = {"success": False, "error": message}
    if technical_error is not None:
        body["technicalError"] = technical_error
    return body
