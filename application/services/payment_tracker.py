"""
支付跟踪

Resumes a checkout after the gateway redirect: polls the finalize proxy until
the payment settles or the client-side timeout elapses, then reports the
timeout so the order stays retryable. Failures become toasts; nothing raises.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from application.ports.idempotency import IdempotencyStore
from application.ports.session import KPAY_REFERENCE_KEY, SessionStore
from application.ports.storefront import Navigator, Notifier, StorefrontPayments
from core.config import settings
from core.logging_config import get_logger
from core.retry import RetryPolicy, constant_backoff
from domain.payment.entity import PaymentStatus
from infrastructure.cache.keys import OrderKeys, TransactionKeys
from infrastructure.cache.query_cache import QueryCache
from infrastructure.external.api_clients.base import APIError


logger = get_logger(__name__)

SETTLED = frozenset({PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value})


class TrackingResult(str, Enum):
    NO_REFERENCE = "no_reference"
    ORDER_CREATED = "order_created"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass
class TrackingOutcome:
    result: TrackingResult
    reference: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    can_create_order: bool = False


def _settled(body: dict[str, Any]) -> bool:
    return body.get("orderCreated") is True or body.get("status") in SETTLED


class PaymentTracker:
    def __init__(
        self,
        payments: StorefrontPayments,
        session: SessionStore,
        notifier: Notifier,
        navigator: Navigator,
        cache: QueryCache,
        idempotency: Optional[IdempotencyStore] = None,
        *,
        policy: Optional[RetryPolicy] = None,
    ):
        self._payments = payments
        self._session = session
        self._notifier = notifier
        self._navigator = navigator
        self._cache = cache
        self._idempotency = idempotency
        self._policy = policy or self.default_policy()

    @staticmethod
    def default_policy() -> RetryPolicy:
        interval = settings.checkout.status_poll_interval_seconds
        attempts = max(1, int(settings.checkout.payment_timeout_seconds / interval))
        return RetryPolicy(
            name="payment_status_poll",
            max_attempts=attempts,
            backoff=constant_backoff(interval),
            retry_on_result=lambda body: not _settled(body),
            retry_on_exceptions=(APIError,),
        )

    async def resume(self, reference: Optional[str] = None, *, user_id: Optional[str] = None) -> TrackingOutcome:
        reference = reference or self._session.get(KPAY_REFERENCE_KEY)
        if not reference:
            return TrackingOutcome(TrackingResult.NO_REFERENCE)

        try:
            body = await self._policy.run(self._payments.finalize, reference)
        except APIError as exc:
            logger.error("payment_tracking_failed", reference=reference, error=exc.message)
            self._notifier.error("Unable to confirm your payment right now. Please check your orders page.")
            return TrackingOutcome(TrackingResult.ERROR, reference=reference)

        if body.get("orderCreated") is True and body.get("orderId"):
            return await self._order_created(reference, body, user_id)

        status = body.get("status")
        if status == PaymentStatus.COMPLETED.value:
            logger.info("payment_completed_without_order", reference=reference)
            return TrackingOutcome(
                TrackingResult.COMPLETED,
                reference=reference,
                can_create_order=bool(body.get("canCreateOrder")),
            )

        if status == PaymentStatus.FAILED.value:
            self._session.remove(KPAY_REFERENCE_KEY)
            self._cache.invalidate(TransactionKeys.all)
            self._notifier.error("Payment failed. Please try again.")
            return TrackingOutcome(TrackingResult.FAILED, reference=reference)

        return await self._timed_out(reference)

    async def _order_created(self, reference: str, body: dict[str, Any], user_id: Optional[str]) -> TrackingOutcome:
        order_id = str(body["orderId"])
        order_number = body.get("orderNumber")
        self._session.remove(KPAY_REFERENCE_KEY)
        if self._idempotency is not None:
            await self._idempotency.claim(reference, {"orderId": order_id, "orderNumber": order_number})

        self._cache.invalidate(OrderKeys.lists())
        self._cache.invalidate(OrderKeys.stats())
        if user_id:
            self._cache.invalidate(OrderKeys.user_orders(user_id))

        logger.info("payment_tracking_order_created", reference=reference, order_id=order_id)
        await self._navigator.push(f"/orders/{order_id}" if user_id else "/thank-you")
        self._notifier.success(f"Order #{order_number or order_id} has been created successfully!")
        return TrackingOutcome(
            TrackingResult.ORDER_CREATED,
            reference=reference,
            order_id=order_id,
            order_number=order_number,
        )

    async def _timed_out(self, reference: str) -> TrackingOutcome:
        logger.warning("payment_tracking_timeout", reference=reference)
        try:
            await self._payments.report_timeout(reference)
        except APIError as exc:
            logger.warning("payment_timeout_report_failed", reference=reference, error=exc.message)
        self._notifier.info("Payment is taking longer than expected. Your order remains available for retry.")
        return TrackingOutcome(TrackingResult.TIMEOUT, reference=reference)
