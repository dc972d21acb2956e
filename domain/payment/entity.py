"""
支付领域规则 - KPay 网关响应归一化

The backend relays KPay responses with whatever field names the gateway used
for that payment method. Everything that interprets those shapes lives here
so the proxies and the checkout client agree on one reading.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional

from shared.codes.payment_codes import KPAY_STATUS_TO_INTERNAL, KPAY_SUCCESS_RETCODE


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"       # 待支付 / 网关处理中
    COMPLETED = "completed"   # 支付成功
    FAILED = "failed"         # 支付失败
    TIMEOUT = "timeout"       # 客户端观察到超时，可重试


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    MTN_MOMO = "mtn_momo"
    AIRTEL_MONEY = "airtel_money"
    VISA_CARD = "visa_card"
    MASTERCARD = "mastercard"
    SPENN = "spenn"


MOBILE_MONEY_METHODS = frozenset({PaymentMethod.MTN_MOMO.value, PaymentMethod.AIRTEL_MONEY.value})

# Prefix of backend payment-session references, e.g. ``PAY-1700000000-AB12``
SESSION_REFERENCE_PREFIX = "PAY-"


def normalize_status(statusid: Any, retcode: Any = None) -> PaymentStatus:
    """Map a KPay ``statusid``/``retcode`` pair onto :class:`PaymentStatus`.

    ``"01"`` or ``retcode == 0`` is completed, ``"02"`` pending, ``"03"``
    failed; anything else is treated as still pending.
    """
    sid = str(statusid) if statusid is not None else None
    if sid == "01" or _is_success_retcode(retcode):
        return PaymentStatus.COMPLETED
    return PaymentStatus(KPAY_STATUS_TO_INTERNAL.get(sid or "", PaymentStatus.PENDING.value))


def _is_success_retcode(retcode: Any) -> bool:
    # numeric only: KPay sends retcode as a JSON number
    return isinstance(retcode, int) and not isinstance(retcode, bool) and retcode == KPAY_SUCCESS_RETCODE


def is_card_method(method: Optional[str]) -> bool:
    if not method:
        return False
    return method in (PaymentMethod.VISA_CARD.value, PaymentMethod.MASTERCARD.value) or "card" in method


def is_mobile_money_method(method: Optional[str]) -> bool:
    return method in MOBILE_MONEY_METHODS


def is_deferred_method(method: Optional[str]) -> bool:
    """Every method except cash on delivery defers order creation until payment."""
    return bool(method) and method != PaymentMethod.CASH_ON_DELIVERY.value


def is_session_reference(payment_id: str) -> bool:
    return payment_id.startswith(SESSION_REFERENCE_PREFIX)


def _first(*values: Any) -> Optional[Any]:
    for value in values:
        if value:
            return value
    return None


def _data_of(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    data = payload.get("data")
    return data if isinstance(data, Mapping) else {}


def extract_checkout_url(payload: Mapping[str, Any]) -> Optional[str]:
    """Pick the gateway checkout URL out of an initiate response.

    Priority: ``checkoutUrl``, ``data.url``, ``data.redirecturl``,
    ``data.redirectUrl``, ``data.checkout_url``, then a top-level ``url``
    only when the gateway flagged ``useurl == "Y"``.
    """
    data = _data_of(payload)
    found = _first(
        payload.get("checkoutUrl"),
        data.get("url"),
        data.get("redirecturl"),
        data.get("redirectUrl"),
        data.get("checkout_url"),
    )
    if found:
        return str(found)
    use_url = payload.get("useurl") or data.get("useurl")
    if str(use_url or "").upper() == "Y" and payload.get("url"):
        return str(payload["url"])
    return None


def extract_reference(payload: Mapping[str, Any]) -> Optional[str]:
    """Pick the payment-session reference out of an initiate response."""
    data = _data_of(payload)
    found = _first(
        payload.get("reference"),
        data.get("reference"),
        data.get("orderReference"),
        data.get("refid"),
        payload.get("sessionId"),
        data.get("sessionId"),
    )
    return str(found) if found else None


def extract_session_checkout_url(kpay_response: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Checkout URL stored on a backend payment session's ``kpayResponse``."""
    if not kpay_response:
        return None
    found = _first(
        kpay_response.get("url"),
        kpay_response.get("redirecturl"),
        kpay_response.get("redirectUrl"),
    )
    return str(found) if found else None
