"""
API客户端模块

提供与后端 REST 服务及本服务支付代理的客户端实现
"""
from .base import (
    BaseAPIClient,
    APIResponse,
    APIError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ServerError,
)
from .backend import BackendClient, create_session_backend_client
from .storefront import StorefrontClient

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "AuthenticationError",
    "ConflictError",
    "NotFoundError",
    "ServerError",
    "BackendClient",
    "create_session_backend_client",
    "StorefrontClient",
]
