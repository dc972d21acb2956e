"""
Checkout DTOs: what the storefront hands the orchestrator on submit, the
per-tab checkout state it mutates, and the outcome it returns.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.payment.entity import PaymentMethod


class CheckoutForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(default="", alias="fullName")
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    delivery_notes: str = ""


class SelectedAddress(BaseModel):
    street: Optional[str] = None
    display_name: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None


class CartItem(BaseModel):
    id: Any
    name: str
    price: float
    quantity: int
    product_id: Optional[str] = None
    variation_id: Optional[str] = None
    sku: Optional[str] = None
    variation_name: Optional[str] = None


class CheckoutUser(BaseModel):
    id: str
    full_name: Optional[str] = None


class CheckoutRequest(BaseModel):
    """结账提交参数（一次提交的全部输入）"""
    form: CheckoutForm = Field(default_factory=CheckoutForm)
    items: list[CartItem] = Field(default_factory=list)
    subtotal: float = 0
    transport: float = 0
    total: float = 0
    payment_method: str = PaymentMethod.CASH_ON_DELIVERY.value
    payment_verified: bool = False
    is_retry: bool = False
    retry_order_id: Optional[str] = None
    orders_enabled: Optional[bool] = None
    orders_source: Optional[str] = None
    orders_disabled_message: Optional[str] = None
    schedule_confirmed: bool = False
    schedule_notes: Optional[str] = None
    mobile_money_phones: dict[str, str] = Field(default_factory=dict)
    selected_address: Optional[SelectedAddress] = None
    derived_city: Optional[str] = None
    user: Optional[CheckoutUser] = None


@dataclass
class CheckoutState:
    """Per-tab checkout flags; the orchestrator owns ``is_submitting``."""
    is_submitting: bool = False
    payment_in_progress: bool = False
    suppress_empty_cart_redirect: bool = False
    prevent_persistence: bool = False
    payment_failure: Optional[str] = None
    errors: dict[str, str] = field(default_factory=dict)

    def clear(self) -> None:
        self.payment_in_progress = False
        self.payment_failure = None
        self.errors = {}


class CheckoutResult(str, Enum):
    IGNORED = "ignored"
    REJECTED = "rejected"
    ORDER_CREATED = "order_created"
    REDIRECTED = "redirected"
    FAILED = "failed"


@dataclass
class CheckoutOutcome:
    result: CheckoutResult
    message: Optional[str] = None
    order_id: Optional[str] = None
    destination: Optional[str] = None
    reference: Optional[str] = None
