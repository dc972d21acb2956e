from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_order_proxy_service
from application.services.order_service import OrderProxyService


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("/{order_id}", summary="Order detail")
async def get_order(order_id: str, service: OrderProxyService = Depends(get_order_proxy_service)):
    return await service.get_order(order_id)
