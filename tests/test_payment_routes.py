import json

import httpx
import pytest


def sent(request: httpx.Request) -> dict:
    return json.loads(request.content)


INITIATE_BODY = {
    "orderData": {"order": {"total": 5000}, "items": []},
    "amount": 5000,
    "customerName": "Aline Uwase",
    "customerEmail": "aline@example.com",
    "customerPhone": "250788123456",
    "paymentMethod": "mtn_momo",
    "redirectUrl": "https://shop.test/checkout?payment=success",
}


@pytest.mark.asyncio
async def test_initiate_requires_amount_and_method(api, backend):
    async with api() as client:
        resp = await client.post("/api/payments/kpay/initiate", json={"orderId": "o1"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Amount and payment method are required"}
    assert backend.requests == []


@pytest.mark.asyncio
async def test_initiate_requires_order_reference_or_data(api):
    async with api() as client:
        resp = await client.post("/api/payments/kpay/initiate", json={"amount": 100, "paymentMethod": "mtn_momo"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "orderId or orderData is required"}


@pytest.mark.asyncio
async def test_initiate_normalizes_gateway_response(api, backend):
    backend.on(
        "POST",
        "/payments/initiate",
        httpx.Response(
            200,
            json={
                "success": True,
                "sessionId": "PAY-1700000000-AB12",
                "data": {"tid": "T-1", "refid": "REF-1", "redirecturl": "https://pay.kpay.test/c/1"},
            },
        ),
    )

    async with api(headers={"Authorization": "Bearer user-token"}) as client:
        resp = await client.post("/api/payments/kpay/initiate", json=INITIATE_BODY)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["checkoutUrl"] == "https://pay.kpay.test/c/1"
    assert body["reference"] == "REF-1"
    assert body["transactionId"] == "T-1"
    assert body["sessionId"] == "PAY-1700000000-AB12"
    assert body["status"] == "pending"

    [forwarded] = backend.calls("POST", "/payments/initiate")
    assert forwarded.headers["Authorization"] == "Bearer user-token"
    payload = sent(forwarded)
    assert payload["customerNumber"] == "250788123456"
    assert payload["orderData"] == INITIATE_BODY["orderData"]
    assert "orderDetails" not in payload


@pytest.mark.asyncio
async def test_initiate_forwards_cookie_token(api, backend):
    backend.on("POST", "/payments/initiate", httpx.Response(200, json={"success": True, "data": {}}))

    async with api(cookies={"auth-token": "cookie-token"}) as client:
        await client.post("/api/payments/kpay/initiate", json={**INITIATE_BODY, "orderData": None, "orderId": "o9"})

    [forwarded] = backend.calls("POST", "/payments/initiate")
    assert forwarded.headers["Authorization"] == "Bearer cookie-token"
    assert sent(forwarded)["orderDetails"] == "Order o9"


@pytest.mark.asyncio
async def test_initiate_relays_backend_rejection(api, backend):
    backend.on("POST", "/payments/initiate", httpx.Response(422, json={"message": "Invalid phone number"}))

    async with api() as client:
        resp = await client.post("/api/payments/kpay/initiate", json=INITIATE_BODY)

    assert resp.status_code == 422
    assert resp.json() == {"success": False, "error": "Invalid phone number"}


@pytest.mark.asyncio
async def test_initiate_unreachable_backend_is_internal_error(api, backend):
    def down(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend.on("POST", "/payments/initiate", down)

    async with api() as client:
        resp = await client.post("/api/payments/kpay/initiate", json=INITIATE_BODY)

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Internal server error"
    assert "connection refused" in body["technicalError"]


@pytest.mark.asyncio
async def test_initiate_rejects_get(api):
    async with api() as client:
        resp = await client.get("/api/payments/kpay/initiate")

    assert resp.status_code == 405
    assert resp.json() == {"error": "Method not allowed"}


@pytest.mark.asyncio
async def test_status_requires_an_identifier(api):
    async with api() as client:
        resp = await client.post("/api/payments/kpay/status", json={})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Payment ID, transaction ID, or reference is required"}


@pytest.mark.asyncio
async def test_status_normalizes_kpay_fields(api, backend):
    backend.on(
        "POST",
        "/payments/status",
        httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "tid": "T-1",
                    "statusid": "01",
                    "statusdesc": "Successfully processed",
                    "retcode": 0,
                    "momtransactionid": "MOM-7",
                    "amount": 5000,
                },
            },
        ),
    )

    async with api() as client:
        resp = await client.get("/api/payments/kpay/status", params={"reference": "REF-1"})

    body = resp.json()
    assert resp.status_code == 200
    assert body["status"] == "completed"
    assert body["needsUpdate"] is True
    assert body["currency"] == "RWF"
    assert body["reference"] == "REF-1"
    assert body["transactionId"] == "T-1"
    assert body["kpayStatus"] == {
        "statusId": "01",
        "statusDescription": "Successfully processed",
        "returnCode": 0,
        "momTransactionId": "MOM-7",
    }


@pytest.mark.asyncio
async def test_finalize_remembers_the_created_order(api, backend):
    backend.on(
        "POST",
        "/payments/status",
        httpx.Response(200, json={"orderCreated": True, "orderId": "o1", "orderNumber": "NM-1001", "data": {"statusid": "01"}}),
        httpx.Response(200, json={"orderCreated": False, "data": {"statusid": "01"}}),
    )

    async with api() as client:
        first = (await client.post("/api/payments/kpay/finalize", json={"reference": "REF-1"})).json()
        second = (await client.post("/api/payments/kpay/finalize", json={"reference": "REF-1"})).json()

    assert first["orderCreated"] is True
    assert first["canCreateOrder"] is False
    assert second["orderCreated"] is True
    assert second["orderId"] == "o1"
    assert second["orderNumber"] == "NM-1001"
    assert second["canCreateOrder"] is False


@pytest.mark.asyncio
async def test_finalize_completed_without_order_allows_creation(api, backend):
    backend.on("POST", "/payments/status", httpx.Response(200, json={"data": {"statusid": "01"}}))

    async with api() as client:
        body = (await client.post("/api/payments/kpay/finalize", json={"reference": "REF-2"})).json()

    assert body["status"] == "completed"
    assert body["orderCreated"] is False
    assert body["canCreateOrder"] is True


@pytest.mark.asyncio
async def test_finalize_pending_cannot_create_order(api, backend):
    backend.on("POST", "/payments/status", httpx.Response(200, json={"data": {"statusid": "02"}}))

    async with api() as client:
        body = (await client.post("/api/payments/kpay/finalize", json={"transactionId": "T-9"})).json()

    assert body["status"] == "pending"
    assert body["canCreateOrder"] is False


@pytest.mark.asyncio
async def test_finalize_requires_reference(api):
    async with api() as client:
        resp = await client.post("/api/payments/kpay/finalize", json={})

    assert resp.status_code == 400
    assert resp.json() == {"error": "reference or transactionId required"}


@pytest.mark.asyncio
async def test_retry_requires_fields(api):
    async with api() as client:
        resp = await client.post("/api/payments/retry", json={"orderId": "o1"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required fields"}


@pytest.mark.asyncio
async def test_retry_defaults_redirect_to_payment_page(api, backend):
    backend.on(
        "POST",
        "/payments/initiate",
        httpx.Response(200, json={"paymentId": "p2", "data": {"tid": "T-2", "url": "https://pay.kpay.test/c/2"}}),
    )

    async with api() as client:
        body = (await client.post(
            "/api/payments/retry",
            json={"orderId": "o1", "amount": 5000, "paymentMethod": "visa_card"},
        )).json()

    assert body["checkoutUrl"] == "https://pay.kpay.test/c/2"
    assert body["paymentId"] == "p2"
    payload = sent(backend.calls("POST", "/payments/initiate")[0])
    assert payload["redirectUrl"] == "https://shop.test/payment/o1"
    assert payload["orderId"] == "o1"


@pytest.mark.asyncio
async def test_timeout_requires_payment_id(api):
    async with api() as client:
        resp = await client.post("/api/payments/timeout", json={})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Payment ID is required"}


@pytest.mark.asyncio
async def test_timeout_uses_default_reason(api, backend):
    backend.on("POST", "/payments/timeout", httpx.Response(200, json={"payment": {"id": "p1"}}))

    async with api() as client:
        body = (await client.post("/api/payments/timeout", json={"paymentId": "p1"})).json()

    assert body == {
        "success": True,
        "message": "Payment timeout recorded. Order remains available for retry.",
        "status": "timeout",
        "payment": {"id": "p1"},
    }
    assert sent(backend.calls("POST", "/payments/timeout")[0])["reason"] == "Client-side timeout after 5 minutes"


@pytest.mark.asyncio
async def test_link_relays_conflict(api, backend):
    backend.on("POST", "/payments/link", httpx.Response(409, json={"message": "Payment already linked"}))

    async with api() as client:
        resp = await client.post("/api/payments/link", json={"orderId": "o1", "reference": "REF-1"})

    assert resp.status_code == 409
    assert resp.json() == {"success": False, "error": "Payment already linked"}


@pytest.mark.asyncio
async def test_link_records_reference(api, backend, idempotency):
    backend.on("POST", "/payments/link", httpx.Response(200, json={"data": {"linked": True}}))

    async with api() as client:
        body = (await client.post("/api/payments/link", json={"orderId": "o1", "reference": "REF-1"})).json()

    assert body["success"] is True
    assert (await idempotency.get("REF-1"))["orderId"] == "o1"


@pytest.mark.asyncio
async def test_session_reference_lookup(api, backend):
    backend.on(
        "GET",
        "/payments/session/PAY-1700000000-AB12",
        httpx.Response(
            200,
            json={
                "orderId": "o1",
                "session": {
                    "id": "s1",
                    "status": "completed",
                    "amount": 5000,
                    "paymentMethod": "mtn_momo",
                    "reference": "PAY-1700000000-AB12",
                    "updatedAt": "2024-05-01T10:00:00Z",
                    "kpayResponse": {"redirecturl": "https://pay.kpay.test/c/1"},
                },
            },
        ),
    )

    async with api() as client:
        body = (await client.get("/api/payments/PAY-1700000000-AB12")).json()

    assert body["order_id"] == "o1"
    assert body["payment_method"] == "mtn_momo"
    assert body["checkout_url"] == "https://pay.kpay.test/c/1"
    assert body["completed_at"] == "2024-05-01T10:00:00Z"
    assert body["customer_name"] == ""


@pytest.mark.asyncio
async def test_payment_lookup_is_snake_cased(api, backend):
    backend.on(
        "GET",
        "/payments/p1",
        httpx.Response(200, json={"data": {"id": "p1", "orderId": "o1", "kpayTransactionId": "T-1", "gatewayNote": "x"}}),
    )

    async with api() as client:
        body = (await client.get("/api/payments/p1")).json()

    assert body["order_id"] == "o1"
    assert body["kpay_transaction_id"] == "T-1"
    assert body["gatewayNote"] == "x"


@pytest.mark.asyncio
async def test_payment_lookup_not_found(api, backend):
    backend.on("GET", "/payments/missing", httpx.Response(404, json={"message": "Payment not found"}))

    async with api() as client:
        resp = await client.get("/api/payments/missing")

    assert resp.status_code == 404
    assert resp.json() == {"error": "Payment not found"}


@pytest.mark.asyncio
async def test_order_payments_are_transformed(api, backend):
    backend.on("GET", "/payments/order/o1", httpx.Response(200, json={"data": [{"id": "p1", "paymentMethod": "visa_card"}]}))

    async with api() as client:
        body = (await client.get("/api/payments/order/o1")).json()

    assert [p["payment_method"] for p in body] == ["visa_card"]


@pytest.mark.asyncio
async def test_legacy_link(api, backend):
    async with api() as client:
        missing = await client.patch("/api/payments/p1", json={})
        linked = await client.patch("/api/payments/p1", json={"order_id": "o1"})

    assert missing.status_code == 400
    assert missing.json() == {"error": "order_id is required"}
    assert linked.json()["success"] is True
    assert linked.json()["orderId"] == "o1"
    assert backend.requests == []


@pytest.mark.asyncio
async def test_order_detail_passthrough(api, backend):
    backend.on("GET", "/orders/o1", httpx.Response(200, json={"id": "o1", "orderNumber": "NM-1001"}))
    backend.on("GET", "/orders/o2", httpx.Response(404, json={"message": "Order not found"}))

    async with api() as client:
        found = await client.get("/api/orders/o1")
        missing = await client.get("/api/orders/o2")

    assert found.json() == {"id": "o1", "orderNumber": "NM-1001"}
    assert missing.status_code == 404
    assert missing.json() == {"error": "Order not found"}
