"""
Business codes shared by the domain exceptions and the HTTP layer.

Proxy endpoints answer with flat ``{"error": ...}`` bodies, so the code never
reaches the storefront; it only picks the HTTP status when an exception does
not carry the backend's own status. KPay specifics live in
``shared.codes.payment_codes``.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # 请求参数（1xxxx）
    PARAM_MISSING = 10001

    # 认证（3xxxx）
    UNAUTHORIZED = 30001

    # 后端 / 网关（4xxxx）
    UPSTREAM_ERROR = 40004


__all__ = ["BusinessCode"]
