"""
KPay 回调转发

The gateway expects a literal ``OK``; everything else about the callback is
the backend's business, so the payload is forwarded unchanged.
"""
from __future__ import annotations

from typing import Any

from core.logging_config import get_logger
from domain.common.exceptions import WebhookRelayError
from infrastructure.external.api_clients.base import APIError
from infrastructure.external.api_clients.backend import BackendClient


logger = get_logger(__name__)


class WebhookRelayService:
    def __init__(self, backend: BackendClient):
        self._backend = backend

    async def relay(self, payload: dict[str, Any]) -> str:
        logger.info(
            "kpay_webhook_received",
            tid=payload.get("tid"),
            refid=payload.get("refid"),
            statusid=payload.get("statusid"),
            statusdesc=payload.get("statusdesc"),
        )
        try:
            await self._backend.forward_webhook(payload)
        except APIError as exc:
            logger.error(
                "kpay_webhook_forward_failed",
                status_code=exc.status_code,
                response=exc.response.text() if exc.response is not None else None,
                error=exc.message,
            )
            raise WebhookRelayError(exc.status_code or 500) from exc

        logger.info("kpay_webhook_forwarded", tid=payload.get("tid"), refid=payload.get("refid"))
        return "OK"
