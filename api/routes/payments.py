"""
Payments API routes.

Storefront-facing KPay proxies. Kept thin: validation messages, backend
calls and response shaping live in ``PaymentProxyService``.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from api.dependencies import get_payment_proxy_service
from application.dtos.payments import (
    FinalizePaymentRequest,
    InitiatePaymentRequest,
    LinkPaymentRequest,
    PaymentStatusRequest,
    PaymentTimeoutRequest,
    RetryPaymentRequest,
)
from application.services.payment_proxy_service import PaymentProxyService


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/kpay/initiate", summary="Start a KPay payment")
async def initiate_payment(
    payload: InitiatePaymentRequest,
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return await service.initiate(payload)


@router.post("/kpay/status", summary="Normalized payment status")
async def payment_status(
    payload: PaymentStatusRequest,
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return await service.status(payload)


@router.get("/kpay/status", summary="Normalized payment status (query parameters)")
async def payment_status_query(
    payment_id: Optional[str] = Query(default=None, alias="paymentId"),
    transaction_id: Optional[str] = Query(default=None, alias="transactionId"),
    reference: Optional[str] = Query(default=None),
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return await service.status(
        PaymentStatusRequest(payment_id=payment_id, transaction_id=transaction_id, reference=reference)
    )


@router.post("/kpay/finalize", summary="Finalize a payment; reports the order created for it")
async def finalize_payment(
    payload: FinalizePaymentRequest,
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return await service.finalize(payload)


@router.post("/retry", summary="Re-initiate payment for an existing order")
async def retry_payment(
    payload: RetryPaymentRequest,
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return await service.retry(payload)


@router.post("/timeout", summary="Record a client-observed payment timeout")
async def payment_timeout(
    payload: PaymentTimeoutRequest,
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return await service.record_timeout(payload)


@router.post("/link", summary="Link a payment reference to an order")
async def link_payment(
    payload: LinkPaymentRequest,
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return await service.link(payload)


@router.get("/order/{order_id}", summary="Payments recorded for an order")
async def order_payments(
    order_id: str,
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return await service.order_payments(order_id)


@router.get("/{payment_id}", summary="Fetch a payment or payment session")
async def get_payment(
    payment_id: str,
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return await service.get_payment(payment_id)


@router.patch("/{payment_id}", summary="Legacy payment/order link")
async def legacy_link_payment(
    payment_id: str,
    payload: dict[str, Any] = Body(default_factory=dict),
    service: PaymentProxyService = Depends(get_payment_proxy_service),
):
    return service.legacy_link(payment_id, payload.get("order_id") or payload.get("orderId"))
