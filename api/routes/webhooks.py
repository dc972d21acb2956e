"""
Gateway webhook routes.

KPay retries a callback until it receives the literal text ``OK``.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from api.dependencies import get_webhook_service
from application.services.webhook_service import WebhookRelayService
from core.logging_config import get_logger
from domain.common.exceptions import WebhookRelayError


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


@router.post("/kpay", response_class=PlainTextResponse, summary="KPay payment callback")
async def kpay_webhook(
    request: Request,
    service: WebhookRelayService = Depends(get_webhook_service),
) -> str:
    try:
        payload = await request.json()
    except ValueError as exc:
        logger.error("kpay_webhook_invalid_body", error=str(exc))
        raise WebhookRelayError() from exc
    if not isinstance(payload, dict):
        logger.error("kpay_webhook_invalid_body", body_type=type(payload).__name__)
        raise WebhookRelayError()
    return await service.relay(payload)
