import json

import httpx
import pytest

from infrastructure.external.api_clients import APIError, StorefrontClient


def client_for(handler) -> StorefrontClient:
    return StorefrontClient(base_url="https://shop.test", max_retries=0, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_error_bodies_are_returned_not_raised():
    def handler(request):
        return httpx.Response(400, json={"success": False, "error": "Invalid amount"})

    async with client_for(handler) as client:
        body = await client.initiate({"amount": 0})

    assert body == {"success": False, "error": "Invalid amount"}


@pytest.mark.asyncio
async def test_finalize_posts_reference():
    seen = []

    def handler(request):
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"orderCreated": False, "status": "pending"})

    async with client_for(handler) as client:
        body = await client.finalize("R1")

    assert body["status"] == "pending"
    assert seen == [("/api/payments/kpay/finalize", {"reference": "R1"})]


@pytest.mark.asyncio
async def test_link_returns_status_code():
    statuses = iter([409, 200])

    def handler(request):
        return httpx.Response(next(statuses), json={})

    async with client_for(handler) as client:
        assert await client.link("o1", "R1") == 409
        assert await client.link("o1", "R1") == 200


@pytest.mark.asyncio
async def test_link_network_failure_raises():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    async with client_for(handler) as client:
        with pytest.raises(APIError) as exc_info:
            await client.link("o1", "R1")

    assert exc_info.value.status_code is None
