"""
Storefront ports used by the checkout orchestrator and payment tracker.

``Notifier`` and ``Navigator`` stand in for the toast system and the router;
``StorefrontPayments`` is the storefront's own payment proxy surface
(``/api/payments/...``) and ``OrderCreator`` is the order mutation.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from domain.order.entity import OrderDraft


@runtime_checkable
class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...


@runtime_checkable
class Navigator(Protocol):
    async def push(self, path: str) -> None: ...

    def redirect_external(self, url: str) -> None: ...


@runtime_checkable
class Cart(Protocol):
    def clear(self) -> None: ...


@runtime_checkable
class OrderCreator(Protocol):
    async def create_order(
        self,
        draft: OrderDraft,
        *,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]: ...


@runtime_checkable
class StorefrontPayments(Protocol):
    """Each call returns the proxy's JSON body; non-2xx bodies are returned too."""

    async def initiate(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def retry(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def finalize(self, reference: str) -> dict[str, Any]: ...

    async def report_timeout(self, payment_id: str, reason: Optional[str] = None) -> dict[str, Any]: ...

    async def link(self, order_id: str, reference: str) -> int: ...
