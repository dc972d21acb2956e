"""
订单领域实体 - 结账时在客户端组装的订单草稿

Orders are persisted by the backend only. The draft below is what the
storefront sends: immediately for cash on delivery, or embedded as
``orderData`` in a payment initiation for every other method.
"""
from __future__ import annotations

import re
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class RefundStatus(str, Enum):
    """退款状态枚举（订单级与明细级共用）"""
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


UUID_LENGTH = 36
# "<product uuid>-<variation uuid>" composite cart ids
COMPOSITE_ID_MIN_LENGTH = 73

GUEST_EMAIL_DOMAIN = "nihemart.rw"
RWANDA_COUNTRY_CODE = "250"

_NON_DIGITS = re.compile(r"\D")


def resolve_product_id(item_id: Any, explicit_product_id: Optional[str] = None) -> str:
    """Recover the product id from a cart line.

    An explicit ``product_id`` wins. Otherwise a bare UUID is used as-is and
    a ``<uuid>-<uuid>`` composite yields its first 36 characters; any other
    id is passed through verbatim.
    """
    if explicit_product_id:
        return explicit_product_id
    if not isinstance(item_id, str):
        return str(item_id)
    if len(item_id) == UUID_LENGTH:
        return item_id
    if len(item_id) >= COMPOSITE_ID_MIN_LENGTH and item_id[UUID_LENGTH] == "-":
        return item_id[:UUID_LENGTH]
    return item_id


def digits_only(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", value or "")


def synthesize_guest_email(phone: Optional[str], *, now_ms: Optional[int] = None, domain: str = GUEST_EMAIL_DOMAIN) -> str:
    """``guest-<phone digits>@nihemart.rw``, or a millisecond timestamp when no digits remain."""
    seed = digits_only(phone) or str(now_ms if now_ms is not None else int(time.time() * 1000))
    return f"guest-{seed}@{domain}"


def split_full_name(full_name: Optional[str]) -> tuple[str, str]:
    """Split on the first space: ``"Jean Paul Mugisha"`` -> ``("Jean", "Paul Mugisha")``."""
    first, _, rest = (full_name or "").partition(" ")
    return first.strip(), rest.strip()


def format_phone_number(phone: Optional[str]) -> str:
    """Normalize a Rwandan number to the ``2507XXXXXXXX`` MSISDN form KPay expects."""
    digits = digits_only(phone)
    if not digits:
        return ""
    if digits.startswith(RWANDA_COUNTRY_CODE) and len(digits) == 12:
        return digits
    if digits.startswith("0") and len(digits) == 10:
        return RWANDA_COUNTRY_CODE + digits[1:]
    if len(digits) == 9:
        return RWANDA_COUNTRY_CODE + digits
    return digits


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class OrderLine:
    product_id: str
    product_name: str
    price: float
    quantity: int
    product_variation_id: Optional[str] = None
    product_sku: Optional[str] = None
    variation_name: Optional[str] = None

    @property
    def total(self) -> float:
        return self.price * self.quantity

    def to_payload(self) -> dict[str, Any]:
        return _drop_none({**asdict(self), "total": self.total})


@dataclass
class OrderDraft:
    """
    订单草稿

    业务规则：
    1. customer_email 永不为空（游客使用合成邮箱）
    2. tax 字段承载运费
    3. 状态固定为 pending，由后端推进
    """
    subtotal: float
    tax: float
    total: float
    customer_email: str
    customer_first_name: str
    customer_last_name: str
    delivery_address: str
    delivery_city: str
    payment_method: str
    items: list[OrderLine] = field(default_factory=list)
    user_id: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_notes: Optional[str] = None
    schedule_notes: Optional[str] = None
    status: str = OrderStatus.PENDING.value

    def to_payload(self) -> dict[str, Any]:
        """Backend ``POST /orders`` body: ``{"order": {...}, "items": [...]}``."""
        order = asdict(self)
        order.pop("items")
        return {
            "order": _drop_none(order),
            "items": [line.to_payload() for line in self.items],
        }
