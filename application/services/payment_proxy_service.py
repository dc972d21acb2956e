"""
Payment proxy service.

Translates storefront payment requests into backend payment-gateway calls
and normalizes the heterogeneous KPay response shapes the backend relays.
Backend rejections surface as :class:`UpstreamServiceError` carrying the
backend's status; transport failures propagate to the global handler.
"""
from __future__ import annotations

from typing import Any, Mapping, NoReturn, Optional

from application.dtos.payments import (
    FinalizePaymentRequest,
    InitiatePaymentRequest,
    LinkPaymentRequest,
    PaymentStatusRequest,
    PaymentTimeoutRequest,
    RetryPaymentRequest,
)
from application.ports.idempotency import IdempotencyStore
from core.logging_config import get_logger
from domain.common.exceptions import ProxyValidationError, UpstreamServiceError
from domain.payment.entity import (
    PaymentStatus,
    extract_checkout_url,
    extract_reference,
    is_session_reference,
    normalize_status,
)
from domain.payment.views import PaymentView, session_to_payment_view
from infrastructure.external.api_clients.base import APIError, APIResponse, BaseAPIClient
from infrastructure.external.api_clients.backend import BackendClient
from shared.codes.payment_codes import DEFAULT_CURRENCY


logger = get_logger(__name__)

DEFAULT_TIMEOUT_REASON = "Client-side timeout after 5 minutes"


def raise_upstream(exc: APIError, default: str, *, with_success_flag: bool = True) -> NoReturn:
    """Backend rejection -> relayable error; transport failures are re-raised as-is."""
    if exc.response is None or exc.status_code is None:
        raise exc
    message = BaseAPIClient.error_message(exc.response, default)
    raise UpstreamServiceError(message, exc.status_code, with_success_flag=with_success_flag) from exc


def _body(response: APIResponse) -> dict[str, Any]:
    return response.data if isinstance(response.data, dict) else {}


def _data(body: Mapping[str, Any]) -> dict[str, Any]:
    data = body.get("data")
    return data if isinstance(data, dict) else {}


def kpay_status_block(status_data: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "statusId": status_data.get("statusid"),
        "statusDescription": status_data.get("statusdesc"),
        "returnCode": status_data.get("retcode"),
        "momTransactionId": status_data.get("momtransactionid"),
    }


class PaymentProxyService:
    """KPay payment proxies over the backend payment API."""

    def __init__(self, backend: BackendClient, idempotency: IdempotencyStore, public_base_url: str = ""):
        self._backend = backend
        self._idempotency = idempotency
        self._public_base_url = public_base_url.rstrip("/")

    async def initiate(self, req: InitiatePaymentRequest) -> dict[str, Any]:
        if not req.amount or not req.payment_method:
            raise ProxyValidationError("Amount and payment method are required")
        if not req.order_id and not req.order_data:
            raise ProxyValidationError("orderId or orderData is required")

        logger.info(
            "payment_initiate_requested",
            order_id=req.order_id,
            has_order_data=req.order_data is not None,
            amount=req.amount,
            payment_method=req.payment_method,
        )

        payload = req.to_backend(
            customerNumber=req.customer_number or req.customer_phone,
            orderDetails=req.order_details or (f"Order {req.order_id}" if req.order_id else None),
        )
        try:
            response = await self._backend.initiate_payment(payload)
        except APIError as exc:
            logger.error("payment_initiate_failed", order_id=req.order_id, status_code=exc.status_code, error=exc.message)
            raise_upstream(exc, "Payment initiation failed")

        body = _body(response)
        data = _data(body)
        checkout_url = extract_checkout_url(body)
        reference = extract_reference(body)
        logger.info(
            "payment_initiated",
            order_id=req.order_id,
            transaction_id=data.get("tid"),
            reference=reference,
            has_checkout_url=bool(checkout_url),
        )
        return {
            "success": True,
            "data": data,
            "checkoutUrl": checkout_url,
            "transactionId": data.get("tid"),
            "reference": reference,
            "sessionId": body.get("sessionId") or data.get("sessionId"),
            "status": PaymentStatus.PENDING.value,
            "message": "Payment initiated successfully",
        }

    async def status(self, req: PaymentStatusRequest) -> dict[str, Any]:
        if not (req.payment_id or req.transaction_id or req.reference):
            raise ProxyValidationError("Payment ID, transaction ID, or reference is required")

        try:
            response = await self._backend.payment_status(req.transaction_id, req.reference)
        except APIError as exc:
            logger.error(
                "payment_status_failed",
                payment_id=req.payment_id,
                reference=req.reference,
                status_code=exc.status_code,
                error=exc.message,
            )
            raise_upstream(exc, "Failed to check payment status")

        status_data = _data(_body(response))
        status = normalize_status(status_data.get("statusid"), status_data.get("retcode"))
        logger.info(
            "payment_status_checked",
            payment_id=req.payment_id,
            reference=req.reference,
            status=status.value,
            status_id=status_data.get("statusid"),
        )
        return {
            "success": True,
            "paymentId": req.payment_id or None,
            "transactionId": status_data.get("tid") or req.transaction_id,
            "reference": req.reference or status_data.get("reference"),
            "status": status.value,
            "amount": status_data.get("amount") or 0,
            "currency": status_data.get("currency") or DEFAULT_CURRENCY,
            "message": status_data.get("statusdesc") or f"Payment is {status.value}",
            "needsUpdate": status is PaymentStatus.COMPLETED,
            "kpayStatus": kpay_status_block(status_data),
        }

    async def finalize(self, req: FinalizePaymentRequest) -> dict[str, Any]:
        """
        查询支付状态；支付成功时后端会按会话创建订单。

        同一 reference 第一次报告 ``orderCreated`` 时登记幂等键，之后的
        调用（包括客户端自行建单前的检查）都能看到该订单。
        """
        if not req.reference and not req.transaction_id:
            raise ProxyValidationError("reference or transactionId required")

        try:
            response = await self._backend.payment_status(req.transaction_id, req.reference)
        except APIError as exc:
            logger.error(
                "payment_finalize_failed",
                reference=req.reference,
                transaction_id=req.transaction_id,
                status_code=exc.status_code,
                error=exc.message,
            )
            raise_upstream(exc, "Failed to finalize payment")

        body = _body(response)
        status_data = _data(body)
        status = normalize_status(status_data.get("statusid"), status_data.get("retcode"))
        key = req.reference or req.transaction_id

        order_created = body.get("orderCreated") is True
        order_id = body.get("orderId") or None
        order_number = body.get("orderNumber") or None

        if order_created and order_id:
            await self._idempotency.claim(key, {"orderId": order_id, "orderNumber": order_number})
        else:
            recorded = await self._idempotency.get(key)
            if recorded:
                order_created = True
                order_id = order_id or recorded.get("orderId")
                order_number = order_number or recorded.get("orderNumber")

        completed = status is PaymentStatus.COMPLETED
        if order_created:
            message = "Payment completed and order created."
        elif completed:
            message = "Payment completed."
        else:
            message = "Payment is not completed yet"

        logger.info(
            "payment_finalized",
            reference=req.reference,
            transaction_id=req.transaction_id,
            order_created=order_created,
            order_id=order_id,
            status=status.value,
        )
        return {
            "success": True,
            "orderId": order_id,
            "orderNumber": order_number,
            "orderCreated": order_created,
            "canCreateOrder": not order_created and completed,
            "status": status.value,
            "message": message,
            "kpayStatus": kpay_status_block(status_data),
        }

    async def retry(self, req: RetryPaymentRequest) -> dict[str, Any]:
        if not req.order_id or not req.amount or not req.payment_method:
            raise ProxyValidationError("Missing required fields")

        logger.info("payment_retry_requested", order_id=req.order_id, amount=req.amount, payment_method=req.payment_method)

        payload = req.to_backend(
            customerNumber=req.customer_phone,
            redirectUrl=req.redirect_url or f"{self._public_base_url}/payment/{req.order_id}",
            orderDetails=f"Order {req.order_id} retry payment",
        )
        try:
            response = await self._backend.initiate_payment(payload)
        except APIError as exc:
            logger.error("payment_retry_failed", order_id=req.order_id, status_code=exc.status_code, error=exc.message)
            raise_upstream(exc, "Payment retry failed")

        body = _body(response)
        data = _data(body)
        checkout_url = extract_checkout_url(body)
        logger.info("payment_retry_initiated", order_id=req.order_id, transaction_id=data.get("tid"), has_checkout_url=bool(checkout_url))
        return {
            "success": True,
            "data": data,
            "checkoutUrl": checkout_url,
            "transactionId": data.get("tid"),
            "reference": extract_reference(body),
            "paymentId": body.get("paymentId") or data.get("paymentId"),
            "status": PaymentStatus.PENDING.value,
            "message": "Payment retry initiated successfully",
        }

    async def record_timeout(self, req: PaymentTimeoutRequest) -> dict[str, Any]:
        logger.info("payment_timeout_requested", payment_id=req.payment_id, reason=req.reason)
        if not req.payment_id:
            raise ProxyValidationError("Payment ID is required")

        try:
            response = await self._backend.record_payment_timeout(req.payment_id, req.reason or DEFAULT_TIMEOUT_REASON)
        except APIError as exc:
            logger.error("payment_timeout_failed", payment_id=req.payment_id, status_code=exc.status_code, error=exc.message)
            raise_upstream(exc, "Failed to record payment timeout")

        body = _body(response)
        logger.info("payment_timeout_recorded", payment_id=req.payment_id, status=body.get("status"))
        return {
            "success": True,
            "message": "Payment timeout recorded. Order remains available for retry.",
            "status": body.get("status") or PaymentStatus.TIMEOUT.value,
            "payment": body.get("payment") or None,
        }

    async def link(self, req: LinkPaymentRequest) -> dict[str, Any]:
        if not req.order_id or not req.reference:
            raise ProxyValidationError("orderId and reference are required")

        try:
            response = await self._backend.link_payment(req.order_id, req.reference)
        except APIError as exc:
            logger.warning("payment_link_failed", order_id=req.order_id, reference=req.reference, status_code=exc.status_code)
            raise_upstream(exc, "Failed to link payment")

        await self._idempotency.claim(req.reference, {"orderId": req.order_id, "orderNumber": None})
        logger.info("payment_linked", order_id=req.order_id, reference=req.reference)
        body = _body(response)
        return {"success": True, "orderId": req.order_id, "reference": req.reference, "data": body.get("data")}

    async def get_payment(self, payment_id: str) -> dict[str, Any]:
        """``PAY-`` 前缀为支付会话引用，其余按支付记录 ID 查询"""
        try:
            if is_session_reference(payment_id):
                response = await self._backend.get_payment_session(payment_id)
            else:
                response = await self._backend.get_payment(payment_id)
        except APIError as exc:
            raise_upstream(exc, "Payment not found", with_success_flag=False)

        body = _body(response)
        if is_session_reference(payment_id) and isinstance(body.get("session"), dict):
            return session_to_payment_view(body["session"], order_id=body.get("orderId"))
        return PaymentView.adapt(_data(body) or body)

    def legacy_link(self, payment_id: str, order_id: Optional[str]) -> dict[str, Any]:
        """旧版关联接口：订单由后端按支付会话创建，此处仅确认"""
        if not order_id:
            raise ProxyValidationError("order_id is required")
        logger.info("payment_legacy_link_ignored", payment_id=payment_id, order_id=order_id)
        return {
            "success": True,
            "message": "Payment already linked to order (one-way flow)",
            "paymentId": payment_id,
            "orderId": order_id,
        }

    async def order_payments(self, order_id: str) -> list[dict[str, Any]]:
        try:
            response = await self._backend.list_order_payments(order_id)
        except APIError as exc:
            raise_upstream(exc, "Failed to fetch payments", with_success_flag=False)

        data = response.data
        if isinstance(data, dict):
            data = data.get("data")
        return PaymentView.adapt_many(data if isinstance(data, list) else [])
