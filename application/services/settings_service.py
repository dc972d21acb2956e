"""
Orders-enabled switch proxy.

Reads are public; writes carry the admin's bearer token. Backend answers,
including error bodies, are relayed verbatim with the backend's status.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.logging_config import get_logger
from infrastructure.external.api_clients.base import APIError, APIResponse
from infrastructure.external.api_clients.backend import BackendClient


logger = get_logger(__name__)

UNKNOWN_ERROR_BODY = {"error": "Unknown error"}


@dataclass(frozen=True)
class RelayedResponse:
    status_code: int
    body: Any


def _relay_error(exc: APIError) -> RelayedResponse:
    if exc.response is None or exc.status_code is None:
        raise exc
    body = exc.response.data if exc.response.data is not None else UNKNOWN_ERROR_BODY
    return RelayedResponse(exc.status_code, body)


def _relay(response: APIResponse) -> RelayedResponse:
    return RelayedResponse(200, response.data)


class OrdersSettingsService:
    def __init__(self, backend: BackendClient):
        self._backend = backend

    async def get_orders_enabled(self) -> RelayedResponse:
        try:
            return _relay(await self._backend.get_orders_enabled())
        except APIError as exc:
            logger.warning("orders_enabled_fetch_failed", status_code=exc.status_code)
            return _relay_error(exc)

    async def set_orders_enabled(self, payload: Any) -> RelayedResponse:
        try:
            response = await self._backend.set_orders_enabled(payload)
        except APIError as exc:
            logger.warning("orders_enabled_update_failed", status_code=exc.status_code)
            return _relay_error(exc)
        logger.info("orders_enabled_updated", payload=payload)
        return _relay(response)

    async def clear_orders_enabled(self) -> RelayedResponse:
        try:
            response = await self._backend.clear_orders_enabled()
        except APIError as exc:
            logger.warning("orders_enabled_clear_failed", status_code=exc.status_code)
            return _relay_error(exc)
        logger.info("orders_enabled_override_cleared")
        return _relay(response)
