"""
Payment proxy DTOs (Pydantic v2) used at the HTTP boundary.

Fields are declared snake_case and accepted in the storefront's camelCase.
Every field is optional: the proxies answer missing fields with their own
fixed messages rather than a generic validation error.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ProxyRequest(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_backend(self, **overrides: Any) -> dict[str, Any]:
        """camelCase body for the backend, dropping unset and empty fields."""
        body = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        body.update({k: v for k, v in overrides.items() if v is not None})
        return body


class InitiatePaymentRequest(ProxyRequest):
    order_id: Optional[str] = None
    order_data: Optional[dict[str, Any]] = None
    amount: Optional[float] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_number: Optional[str] = None
    payment_method: Optional[str] = None
    redirect_url: Optional[str] = None
    order_details: Optional[str] = None


class PaymentStatusRequest(ProxyRequest):
    payment_id: Optional[str] = None
    transaction_id: Optional[str] = None
    reference: Optional[str] = None


class FinalizePaymentRequest(ProxyRequest):
    reference: Optional[str] = None
    transaction_id: Optional[str] = None


class RetryPaymentRequest(ProxyRequest):
    order_id: Optional[str] = None
    amount: Optional[float] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_method: Optional[str] = None
    redirect_url: Optional[str] = None


class PaymentTimeoutRequest(ProxyRequest):
    payment_id: Optional[str] = None
    reason: Optional[str] = None


class LinkPaymentRequest(ProxyRequest):
    order_id: Optional[str] = None
    reference: Optional[str] = None


class TransactionQuery(BaseModel):
    """管理端交易列表查询参数"""
    page: int = 1
    limit: int = 20
    status: Optional[str] = None
    search: Optional[str] = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
