"""
Admin API routes: transaction reporting and the orders-enabled switch.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from api.dependencies import (
    RequestSession,
    get_orders_settings_service,
    get_transaction_service,
    require_session,
)
from application.dtos.payments import TransactionQuery
from application.services.settings_service import OrdersSettingsService, RelayedResponse
from application.services.transaction_service import TransactionService
from core.config import settings


router = APIRouter(prefix="/admin", tags=["Admin"])


def _relayed(result: RelayedResponse) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/transactions", summary="Filtered, sorted, paginated transactions")
async def list_transactions(
    page: int = Query(default=1),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE),
    status: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    sort_order: str = Query(default="desc", alias="sortOrder"),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    from_date: Optional[str] = Query(default=None, alias="from"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    to_date: Optional[str] = Query(default=None, alias="to"),
    service: TransactionService = Depends(get_transaction_service),
):
    query = TransactionQuery(
        page=page,
        limit=limit,
        status=status,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        start_date=start_date or from_date,
        end_date=end_date or to_date,
    )
    return await service.list_transactions(query)


@router.get("/transactions/stats", summary="This week vs last week")
async def transaction_stats(service: TransactionService = Depends(get_transaction_service)):
    return await service.stats()


@router.get("/transactions/counts", summary="Transaction counts by status")
async def transaction_counts(service: TransactionService = Depends(get_transaction_service)):
    return await service.counts()


@router.get("/settings/orders-enabled", summary="Whether the storefront accepts orders")
async def get_orders_enabled(service: OrdersSettingsService = Depends(get_orders_settings_service)):
    return _relayed(await service.get_orders_enabled())


@router.post("/settings/orders-enabled", summary="Set the orders-enabled switch")
async def set_orders_enabled(
    payload: dict[str, Any] = Body(...),
    session: RequestSession = Depends(require_session),
    service: OrdersSettingsService = Depends(get_orders_settings_service),
):
    return _relayed(await service.set_orders_enabled(payload))


@router.delete("/settings/orders-enabled", summary="Clear the admin override")
async def clear_orders_enabled(
    session: RequestSession = Depends(require_session),
    service: OrdersSettingsService = Depends(get_orders_settings_service),
):
    return _relayed(await service.clear_orders_enabled())
