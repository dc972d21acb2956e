"""
Order views: backend camelCase orders -> storefront snake_case.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import field_validator

from domain.common.views import ResourceView


class OrderItemView(ResourceView):
    id: Optional[Any] = None
    order_id: Optional[Any] = None
    product_id: Optional[Any] = None
    product_variation_id: Optional[Any] = None
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    variation_name: Optional[str] = None
    product_image_url: Optional[str] = None
    price: Optional[Any] = None
    quantity: Optional[int] = None
    total: Optional[Any] = None
    created_at: Optional[Any] = None
    refund_requested: Optional[bool] = None
    refund_reason: Optional[str] = None
    refund_status: Optional[str] = None
    refund_requested_at: Optional[Any] = None


class OrderView(ResourceView):
    id: Optional[Any] = None
    order_number: Optional[Any] = None
    user_id: Optional[Any] = None
    status: Optional[str] = None
    subtotal: Optional[Any] = None
    tax: Optional[Any] = None
    total: Optional[Any] = None
    customer_email: Optional[str] = None
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_notes: Optional[str] = None
    schedule_notes: Optional[str] = None
    delivery_time: Optional[Any] = None
    payment_method: Optional[str] = None
    is_paid: Optional[bool] = None
    is_external: Optional[bool] = None
    refund_requested: Optional[bool] = None
    refund_reason: Optional[str] = None
    refund_status: Optional[str] = None
    refund_requested_at: Optional[Any] = None
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None
    shipped_at: Optional[Any] = None
    delivered_at: Optional[Any] = None
    items: Optional[list[OrderItemView]] = None

    @field_validator("items", mode="before")
    @classmethod
    def _keep_mapping_items(cls, v):
        if isinstance(v, list):
            return [item for item in v if isinstance(item, dict)]
        return v


def adapt_order_payload(payload: Any) -> Any:
    """Adapt a single order, a bare list, or a ``{"data": [...]}`` page."""
    if isinstance(payload, list):
        return OrderView.adapt_many(payload)
    if isinstance(payload, dict):
        if isinstance(payload.get("data"), list):
            return {**payload, "data": OrderView.adapt_many(payload["data"])}
        if isinstance(payload.get("order"), dict):
            return OrderView.adapt(payload["order"])
        return OrderView.adapt(payload)
    return payload
