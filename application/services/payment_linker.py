"""
支付关联

Best-effort linking of a verified payment reference to a freshly created
order. Bounded retries; HTTP 409 means the backend already linked it.
Never raises: the caller only decides whether to show an informational toast.
"""
from __future__ import annotations

from typing import Optional

from application.ports.storefront import StorefrontPayments
from core.config import settings
from core.logging_config import get_logger
from core.retry import RetryPolicy, linear_backoff
from infrastructure.external.api_clients.base import APIError


logger = get_logger(__name__)

ALREADY_LINKED = 409


def is_linked(status_code: Optional[int]) -> bool:
    if status_code is None:
        return False
    return 200 <= status_code < 300 or status_code == ALREADY_LINKED


def default_link_policy() -> RetryPolicy:
    return RetryPolicy(
        name="payment_link",
        max_attempts=settings.checkout.link_max_attempts,
        backoff=linear_backoff(settings.checkout.link_backoff_seconds),
        retry_on_result=lambda status: not is_linked(status),
        retry_on_exceptions=(APIError,),
    )


class PaymentLinker:
    def __init__(self, payments: StorefrontPayments, policy: Optional[RetryPolicy] = None):
        self._payments = payments
        self._policy = policy or default_link_policy()

    async def link(self, order_id: str, reference: str) -> bool:
        try:
            status = await self._policy.run(self._payments.link, order_id, reference)
        except APIError as exc:
            logger.warning("payment_link_exhausted", order_id=order_id, reference=reference, error=exc.message)
            return False

        linked = is_linked(status)
        if linked:
            logger.info("payment_link_confirmed", order_id=order_id, reference=reference, status_code=status)
        else:
            logger.warning("payment_link_exhausted", order_id=order_id, reference=reference, status_code=status)
        return linked
