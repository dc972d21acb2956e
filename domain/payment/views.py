"""
Payment views exposed by the storefront proxies.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from domain.common.views import ResourceView
from domain.payment.entity import PaymentStatus, extract_session_checkout_url


class PaymentView(ResourceView):
    id: Optional[Any] = None
    order_id: Optional[Any] = None
    amount: Optional[Any] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    status: Optional[str] = None
    reference: Optional[Any] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    kpay_transaction_id: Optional[Any] = None
    kpay_auth_key: Optional[Any] = None
    kpay_return_code: Optional[Any] = None
    kpay_response: Optional[Any] = None
    kpay_webhook_data: Optional[Any] = None
    kpay_mom_transaction_id: Optional[Any] = None
    kpay_pay_account: Optional[Any] = None
    failure_reason: Optional[str] = None
    client_timeout: Optional[bool] = None
    client_timeout_reason: Optional[str] = None
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None
    completed_at: Optional[Any] = None


def session_to_payment_view(session: Mapping[str, Any], order_id: Optional[str] = None) -> dict[str, Any]:
    """Project a backend payment *session* onto the payment view.

    Sessions exist before any order does, so ``order_id`` comes from the
    envelope rather than the session itself, and the checkout URL is read
    from the stored gateway response.
    """
    status = session.get("status")
    kpay_response = session.get("kpayResponse") if isinstance(session.get("kpayResponse"), Mapping) else None
    return {
        "id": session.get("id"),
        "order_id": order_id,
        "amount": session.get("amount"),
        "currency": session.get("currency"),
        "payment_method": session.get("paymentMethod"),
        "status": status,
        "reference": session.get("reference"),
        "kpay_transaction_id": session.get("kpayTransactionId") or None,
        "customer_name": session.get("customerName") or "",
        "customer_email": session.get("customerEmail") or "",
        "customer_phone": session.get("customerPhone") or "",
        "created_at": session.get("createdAt"),
        "updated_at": session.get("updatedAt"),
        "completed_at": session.get("updatedAt") if status == PaymentStatus.COMPLETED.value else None,
        "checkout_url": extract_session_checkout_url(kpay_response),
    }
