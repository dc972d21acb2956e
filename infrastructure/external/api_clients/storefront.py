"""
Storefront payment proxy client.

Used by the checkout orchestrator and payment tracker to call this
service's own ``/api/payments/...`` endpoints. Error bodies are returned
rather than raised: callers branch on ``success``/``error`` the way the
browser code does.
"""
from typing import Any, Dict, Optional

from infrastructure.external.api_clients.base import APIError, APIResponse, BaseAPIClient


class StorefrontClient(BaseAPIClient):

    async def _body(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self._request(method, endpoint, json_data=payload)
        except APIError as exc:
            data = exc.response.data if exc.response is not None else None
            if isinstance(data, dict):
                return data
            return {"success": False, "error": exc.message}
        return response.data if isinstance(response.data, dict) else {}

    async def initiate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._body("POST", "/api/payments/kpay/initiate", payload)

    async def retry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._body("POST", "/api/payments/retry", payload)

    async def finalize(self, reference: str) -> Dict[str, Any]:
        return await self._body("POST", "/api/payments/kpay/finalize", {"reference": reference})

    async def status(self, reference: str) -> Dict[str, Any]:
        return await self._body("POST", "/api/payments/kpay/status", {"reference": reference})

    async def report_timeout(self, payment_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"paymentId": payment_id}
        if reason:
            payload["reason"] = reason
        return await self._body("POST", "/api/payments/timeout", payload)

    async def link(self, order_id: str, reference: str) -> int:
        """返回 HTTP 状态码；409 表示已关联"""
        try:
            response: APIResponse = await self.post(
                "/api/payments/link",
                json_data={"orderId": order_id, "reference": reference},
            )
        except APIError as exc:
            if exc.status_code is None:
                raise
            return exc.status_code
        return response.status_code
