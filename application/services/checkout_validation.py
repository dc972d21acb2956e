"""结账表单与支付请求校验"""
from __future__ import annotations

import re
from typing import Any, Mapping

from pydantic import EmailStr, TypeAdapter, ValidationError

from application.dtos.checkout import CheckoutRequest
from domain.order.entity import format_phone_number
from domain.payment.entity import PaymentMethod, is_deferred_method, is_mobile_money_method


# 2507XXXXXXXX：MTN 078/079，Airtel 072/073
RWANDA_MSISDN_PATTERN = re.compile(r"^2507[2389]\d{7}$")

DEFERRED_METHODS = frozenset(m.value for m in PaymentMethod if is_deferred_method(m.value))
_EMAIL = TypeAdapter(EmailStr)


def is_valid_email(value: str) -> bool:
    try:
        _EMAIL.validate_python(value)
    except ValidationError:
        return False
    return True


def is_valid_msisdn(value: str) -> bool:
    return bool(RWANDA_MSISDN_PATTERN.match(value))


def validate_checkout_form(request: CheckoutRequest) -> dict[str, str]:
    """返回 字段 -> 错误消息；为空表示通过"""
    form = request.form
    address = request.selected_address
    errors: dict[str, str] = {}

    user_name = request.user.full_name if request.user else None
    if not (user_name or "").strip() and not form.full_name.strip():
        errors["fullName"] = "Full name is required"

    if form.email.strip() and not is_valid_email(form.email.strip()):
        errors["email"] = "Please enter a valid email address"

    phone = (address.phone if address and address.phone else form.phone).strip()
    if not phone:
        errors["phone"] = "Phone number is required"
    elif not is_valid_msisdn(format_phone_number(phone)):
        errors["phone"] = "Please enter a valid phone number"

    has_address = address is not None and bool((address.street or address.display_name or "").strip())
    if not has_address and not form.address.strip():
        errors["address"] = "Delivery address is required"

    has_city = bool((request.derived_city or "").strip()) or bool(address and (address.city or "").strip())
    if not has_city and not form.city.strip():
        errors["city"] = "City is required"

    if is_mobile_money_method(request.payment_method):
        momo = request.mobile_money_phones.get(request.payment_method)
        if momo is not None and not is_valid_msisdn(format_phone_number(momo)):
            errors["mobileMoneyPhone"] = "Please enter a valid mobile money number"

    return errors


def validate_payment_request(payload: Mapping[str, Any]) -> list[str]:
    errors: list[str] = []

    try:
        amount = float(payload.get("amount") or 0)
    except (TypeError, ValueError):
        amount = 0
    if amount <= 0:
        errors.append("Amount must be greater than 0")

    if not str(payload.get("customerName") or "").strip():
        errors.append("Customer name is required")

    method = payload.get("paymentMethod")
    if method not in DEFERRED_METHODS:
        errors.append(f"Unsupported payment method: {method}")

    if is_mobile_money_method(method) and not is_valid_msisdn(str(payload.get("customerPhone") or "")):
        errors.append("A valid mobile money phone number is required")

    email = str(payload.get("customerEmail") or "").strip()
    if email and not is_valid_email(email):
        errors.append("Customer email is invalid")

    return errors
