"""
管理端交易报表服务

Built on the backend payment list, which only filters by status and date
range; search, sorting and pagination happen here. Reporting must never
break the dashboard, so every failure degrades to an empty result.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from application.dtos.payments import TransactionQuery
from core.logging_config import get_logger
from domain.payment.entity import PaymentStatus
from domain.payment.views import PaymentView
from infrastructure.external.api_clients.base import APIError
from infrastructure.external.api_clients.backend import BackendClient


logger = get_logger(__name__)

SEARCH_FIELDS = ("reference", "customer_name", "customer_email", "kpay_transaction_id")
COUNTED_STATUSES = tuple(s.value for s in PaymentStatus)
STAT_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.PENDING)
WEEK = timedelta(days=7)


def empty_transactions() -> dict[str, Any]:
    return {"transactions": [], "pagination": {"page": 1, "limit": 20, "total": 0, "pages": 1}}


def empty_stats() -> dict[str, Any]:
    return {
        "totalRevenue": 0,
        "completedTransactions": 0,
        "failedTransactions": 0,
        "pendingTransactions": 0,
        "revenueChange": 0,
        "completedChange": 0,
        "failedChange": 0,
        "pendingChange": 0,
    }


def empty_counts() -> dict[str, int]:
    return {"all": 0, "pending": 0, "completed": 0, "failed": 0, "timeout": 0, "total": 0}


def percentage_change(current: float, previous: float) -> float:
    """相对上一周期的百分比变化；上一周期为 0 时记为 0"""
    if previous <= 0:
        return 0
    return (current - previous) / previous * 100


def _sort_key(field: str, alt: str) -> Callable[[dict[str, Any]], tuple]:
    def key(payment: dict[str, Any]) -> tuple:
        value = payment.get(field)
        if value in (None, ""):
            value = payment.get(alt)
        if value in (None, ""):
            return (0, "")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return (1, value)
        return (2, str(value))
    return key


def _matches(payment: dict[str, Any], needle: str) -> bool:
    for field in SEARCH_FIELDS:
        value = payment.get(field)
        if isinstance(value, str) and needle in value.lower():
            return True
    return False


def _window_stats(payments: list[dict[str, Any]]) -> dict[str, float]:
    by_status = {s: [p for p in payments if p.get("status") == s.value] for s in STAT_STATUSES}
    revenue = 0.0
    for payment in by_status[PaymentStatus.COMPLETED]:
        try:
            revenue += float(payment.get("amount") or 0)
        except (TypeError, ValueError):
            continue
    return {
        "totalRevenue": revenue,
        "completedTransactions": len(by_status[PaymentStatus.COMPLETED]),
        "failedTransactions": len(by_status[PaymentStatus.FAILED]),
        "pendingTransactions": len(by_status[PaymentStatus.PENDING]),
    }


class TransactionService:
    def __init__(self, backend: BackendClient, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._backend = backend
        self._clock = clock

    async def _payments(self, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        response = await self._backend.list_payments(params)
        body = response.data if isinstance(response.data, dict) else {}
        data = body.get("data")
        if not isinstance(data, list):
            return []
        payments = [dict(item) for item in data if isinstance(item, Mapping)]
        if len(payments) != len(data):
            logger.warning("transactions_malformed_entries_dropped", dropped=len(data) - len(payments))
        return payments

    async def list_transactions(self, query: TransactionQuery) -> dict[str, Any]:
        logger.info("transactions_fetch_requested", **query.model_dump())
        try:
            raw = await self._payments({"status": query.status, "from": query.start_date, "to": query.end_date})
            payments = PaymentView.adapt_many(raw)
        except APIError as exc:
            logger.error("transactions_fetch_failed", status_code=exc.status_code, error=exc.message)
            return empty_transactions()
        except ValidationError as exc:
            logger.error("transactions_payload_invalid", errors=exc.error_count(), error=str(exc))
            return empty_transactions()

        if query.search:
            needle = query.search.lower()
            payments = [p for p in payments if _matches(p, needle)]

        payments.sort(
            key=_sort_key(query.sort_by, to_snake(query.sort_by)),
            reverse=query.sort_order != "asc",
        )

        limit = max(query.limit, 1)
        page = max(query.page, 1)
        total = len(payments)
        start = (page - 1) * limit
        logger.info("transactions_fetched", total=total, page=page)
        return {
            "transactions": payments[start:start + limit],
            "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
        }

    async def stats(self) -> dict[str, Any]:
        """最近 7 天与前 7 天的收入、状态计数对比"""
        now = self._clock()
        current_start = now - WEEK
        previous_start = current_start - WEEK

        windows = {}
        for name, params in (
            ("current", {"from": current_start.isoformat()}),
            ("previous", {"from": previous_start.isoformat(), "to": current_start.isoformat()}),
        ):
            try:
                windows[name] = await self._payments(params)
            except APIError as exc:
                if exc.status_code is None:
                    logger.error("transaction_stats_failed", window=name, error=exc.message)
                    return empty_stats()
                # 后端拒绝的窗口按无交易计算
                logger.warning("transaction_stats_window_failed", window=name, status_code=exc.status_code)
                windows[name] = []

        current = _window_stats(windows["current"])
        previous = _window_stats(windows["previous"])
        stats = {
            **current,
            "revenueChange": percentage_change(current["totalRevenue"], previous["totalRevenue"]),
            "completedChange": percentage_change(current["completedTransactions"], previous["completedTransactions"]),
            "failedChange": percentage_change(current["failedTransactions"], previous["failedTransactions"]),
            "pendingChange": percentage_change(current["pendingTransactions"], previous["pendingTransactions"]),
        }
        logger.info("transaction_stats_fetched", **stats)
        return stats

    async def counts(self) -> dict[str, int]:
        try:
            payments = await self._payments()
        except APIError as exc:
            logger.error("transaction_counts_failed", status_code=exc.status_code, error=exc.message)
            return empty_counts()

        counts = {status: 0 for status in COUNTED_STATUSES}
        for payment in payments:
            status = str(payment.get("status") or "").lower()
            if status in counts:
                counts[status] += 1
        result = {"all": len(payments), **counts, "total": len(payments)}
        logger.info("transaction_counts_fetched", **result)
        return result
