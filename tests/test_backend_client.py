from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest

from application.services.token_service import TokenService, is_token_expiring_soon, token_expiry
from core.retry import RetryPolicy
from infrastructure.external.api_clients import AuthenticationError, ServerError, create_session_backend_client
from infrastructure.session import InMemoryTokenStore


def make_token(expires_in: timedelta, sub: str = "user-1") -> str:
    exp = datetime.now(timezone.utc) + expires_in
    return jwt.encode({"sub": sub, "exp": int(exp.timestamp())}, "not-verified-here", algorithm="HS256")


def bearer(request: httpx.Request) -> str:
    return request.headers.get("Authorization", "")


def test_token_expiry_is_read_without_verification():
    token = make_token(timedelta(hours=2))
    assert token_expiry(token) is not None
    assert not is_token_expiring_soon(token, 3600)
    assert is_token_expiring_soon(make_token(timedelta(minutes=5)), 3600)


def test_unparseable_token_counts_as_expiring():
    assert is_token_expiring_soon("not-a-jwt", 60)


@pytest.mark.asyncio
async def test_401_refreshes_and_replays_once(backend, make_backend_client):
    old, new = make_token(timedelta(hours=2), "old"), make_token(timedelta(hours=2), "new")
    store = InMemoryTokenStore(old, "refresh-1")

    def order(request):
        if bearer(request) == f"Bearer {new}":
            return httpx.Response(200, json={"id": "o1"})
        return httpx.Response(401, json={"message": "Token expired"})

    backend.on("GET", "/orders/o1", order)
    backend.on("POST", "/auth/refresh", httpx.Response(200, json={"accessToken": new, "refreshToken": "refresh-2"}))

    client = create_session_backend_client(store, base_url="http://backend.test/api", transport=httpx.MockTransport(backend))
    async with client:
        response = await client.get_order("o1")

    assert response.data == {"id": "o1"}
    assert len(backend.calls("GET", "/orders/o1")) == 2
    assert store.get_token() == new
    assert store.get_refresh_token() == "refresh-2"
    refresh_call = backend.calls("POST", "/auth/refresh")[0]
    assert "Authorization" not in refresh_call.headers


@pytest.mark.asyncio
async def test_failed_refresh_clears_session_and_raises(backend, make_backend_client, no_sleep):
    store = InMemoryTokenStore(make_token(timedelta(hours=2)), "refresh-1")
    backend.on("GET", "/orders/o1", httpx.Response(401, json={"message": "Token expired"}))
    backend.on("POST", "/auth/refresh", httpx.Response(401, json={"message": "Refresh token revoked"}))

    client = make_backend_client()
    client.authenticator = TokenService(
        store,
        client.refresh_session,
        retry_policy=RetryPolicy(name="token_refresh", max_attempts=2, retry_on_result=lambda r: r is None, sleep=no_sleep),
    )
    async with client:
        with pytest.raises(AuthenticationError) as exc_info:
            await client.get_order("o1")

    assert exc_info.value.status_code == 401
    assert len(backend.calls("POST", "/auth/refresh")) == 2
    assert len(backend.calls("GET", "/orders/o1")) == 1
    assert store.get_token() is None


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed_before_the_request(backend):
    soon, fresh = make_token(timedelta(minutes=1), "soon"), make_token(timedelta(hours=2), "fresh")
    store = InMemoryTokenStore(soon, "refresh-1")
    backend.on("POST", "/auth/refresh", httpx.Response(200, json={"data": {"accessToken": fresh}}))
    backend.on("GET", "/orders/o1", httpx.Response(200, json={"id": "o1"}))

    client = create_session_backend_client(store, base_url="http://backend.test/api", transport=httpx.MockTransport(backend))
    async with client:
        await client.get_order("o1")

    [request] = backend.calls("GET", "/orders/o1")
    assert bearer(request) == f"Bearer {fresh}"
    assert store.get_refresh_token() == "refresh-1"


@pytest.mark.asyncio
async def test_idempotent_requests_retry_transient_statuses(backend, make_backend_client):
    backend.on(
        "GET",
        "/payments/p1",
        httpx.Response(503, json={"message": "warming up"}),
        httpx.Response(200, json={"data": {"id": "p1"}}),
    )

    async with make_backend_client(max_retries=2, retry_delay=0) as client:
        response = await client.get_payment("p1")

    assert response.data == {"data": {"id": "p1"}}
    assert len(backend.calls("GET", "/payments/p1")) == 2


@pytest.mark.asyncio
async def test_payment_initiation_is_never_retried(backend, make_backend_client):
    backend.on("POST", "/payments/initiate", httpx.Response(503, json={"message": "Gateway unavailable"}))

    async with make_backend_client(max_retries=2, retry_delay=0) as client:
        with pytest.raises(ServerError) as exc_info:
            await client.initiate_payment({"amount": 1000})

    assert exc_info.value.status_code == 503
    assert exc_info.value.message == "Gateway unavailable"
    assert len(backend.calls("POST", "/payments/initiate")) == 1


@pytest.mark.asyncio
async def test_create_order_sends_idempotency_key(backend, make_backend_client):
    backend.on("POST", "/orders", httpx.Response(201, json={"data": {"id": "o1"}}))

    async with make_backend_client() as client:
        await client.create_order({"order": {}, "items": []}, idempotency_key="REF-1")

    [request] = backend.calls("POST", "/orders")
    assert request.headers["Idempotency-Key"] == "REF-1"
