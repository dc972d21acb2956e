"""Pytest bootstrap configuration.

Environment is set before any application module is imported so the
settings singleton points at a fake backend. Backend HTTP is faked with
``httpx.MockTransport``; routes are driven through ``httpx.ASGITransport``.
"""
import os

os.environ.setdefault("API_BASE_URL", "http://backend.test/api")
os.environ.setdefault("PUBLIC_BASE_URL", "https://shop.test")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("BACKEND__RETRY_DELAY", "0")

import json
from typing import Any, Callable, Optional, Union

import httpx
import pytest
from fastapi import Depends

from api.dependencies import RequestSession, get_backend_client, get_idempotency, get_request_session
from infrastructure.cache.idempotency import InMemoryIdempotencyStore
from infrastructure.external.api_clients.backend import BackendClient


BACKEND_URL = "http://backend.test/api"

Handler = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


def json_response(status_code: int = 200, body: Any = None) -> httpx.Response:
    return httpx.Response(status_code, json=body if body is not None else {})


class FakeBackend:
    """Answers backend calls by (method, path below /api) and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Handler]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, *handlers: Handler) -> "FakeBackend":
        """Queue responses; the last one repeats once the queue is drained."""
        self.routes[(method.upper(), "/api" + path)] = list(handlers)
        return self

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == "/api" + path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return json_response(404, {"message": f"No route for {request.method} {request.url.path}"})
        handler = queue.pop(0) if len(queue) > 1 else queue[0]
        return handler(request) if callable(handler) else handler


def body_of(request: httpx.Request) -> Any:
    return json.loads(request.content or b"null")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def make_backend_client(backend: FakeBackend) -> Callable[..., BackendClient]:
    def _make(**kwargs) -> BackendClient:
        kwargs.setdefault("base_url", BACKEND_URL)
        return BackendClient(transport=httpx.MockTransport(backend), **kwargs)
    return _make


@pytest.fixture
def idempotency() -> InMemoryIdempotencyStore:
    return InMemoryIdempotencyStore()


@pytest.fixture
def api(backend: FakeBackend, idempotency: InMemoryIdempotencyStore):
    """Factory for an HTTP client bound to the app with the backend faked."""
    from main import app

    async def _backend_client(session: RequestSession = Depends(get_request_session)):
        client = BackendClient(
            base_url=BACKEND_URL,
            auth_token=session.token,
            transport=httpx.MockTransport(backend),
        )
        try:
            yield client
        finally:
            await client.close()

    app.dependency_overrides[get_backend_client] = _backend_client
    app.dependency_overrides[get_idempotency] = lambda: idempotency
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)

    def _client(cookies: Optional[dict] = None, headers: Optional[dict] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=transport, base_url="http://testserver", cookies=cookies, headers=headers)

    yield _client
    app.dependency_overrides.clear()


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def of(self, kind: str) -> list[str]:
        return [m for k, m in self.messages if k == kind]


class RecordingNavigator:
    def __init__(self) -> None:
        self.pushed: list[str] = []
        self.external: list[str] = []

    async def push(self, path: str) -> None:
        self.pushed.append(path)

    def redirect_external(self, url: str) -> None:
        self.external.append(url)


class RecordingSleep:
    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()
