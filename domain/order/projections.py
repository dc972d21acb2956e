"""
Optimistic order projections.

Pure functions returning an updated copy of a cached order, or ``None`` when
the order is not affected. The backend's answer always replaces these.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional

from domain.order.entity import RefundStatus

Order = dict[str, Any]
Projection = Callable[[Order], Optional[Order]]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def refund_requested_fields(reason: str, requested_at: Optional[str] = None) -> dict[str, Any]:
    return {
        "refund_requested": True,
        "refund_reason": reason,
        "refund_status": RefundStatus.REQUESTED.value,
        "refund_requested_at": requested_at or _now_iso(),
    }


def refund_cancelled_fields() -> dict[str, Any]:
    return {
        "refund_requested": False,
        "refund_reason": None,
        "refund_status": RefundStatus.CANCELLED.value,
        "refund_requested_at": None,
    }


def set_status(order_id: str, status: str, extra: Optional[dict[str, Any]] = None) -> Projection:
    def project(order: Order) -> Optional[Order]:
        if order.get("id") != order_id:
            return None
        return {**order, **(extra or {}), "status": status}
    return project


def set_order_fields(order_id: str, fields: dict[str, Any]) -> Projection:
    def project(order: Order) -> Optional[Order]:
        if order.get("id") != order_id:
            return None
        return {**order, **fields}
    return project


def set_item_fields(item_id: str, fields: dict[str, Any]) -> Projection:
    def project(order: Order) -> Optional[Order]:
        items = order.get("items")
        if not isinstance(items, list):
            return None
        if not any(isinstance(it, dict) and it.get("id") == item_id for it in items):
            return None
        return {
            **order,
            "items": [
                {**it, **fields} if isinstance(it, dict) and it.get("id") == item_id else it
                for it in items
            ],
        }
    return project


def apply_to_entry(entry: Any, projection: Projection) -> Optional[Any]:
    """Apply to a cached detail, a bare list, or a ``{"data": [...]}`` page."""
    if isinstance(entry, list):
        changed = False
        out = []
        for order in entry:
            updated = projection(order) if isinstance(order, dict) else None
            changed = changed or updated is not None
            out.append(updated if updated is not None else order)
        return out if changed else None
    if not isinstance(entry, dict):
        return None
    if isinstance(entry.get("data"), list):
        page = apply_to_entry(entry["data"], projection)
        return {**entry, "data": page} if page is not None else None
    return projection(entry)
