import json
from datetime import datetime, timezone

import httpx
import pytest

from application.services import orders_schedule
from application.services.orders_schedule import OrdersScheduleService, ScheduleResult, decide
from core.config import settings
from infrastructure.external.api_clients.base import APIError
from scripts import toggle_orders_schedule as script


def utc(hour: int, minute: int) -> datetime:
    return datetime(2024, 5, 1, hour, minute, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("now", "enabled"),
    [
        (utc(19, 29), True),
        (utc(19, 30), False),
        (utc(23, 0), False),
        (utc(6, 59), False),
        (utc(7, 0), True),
        (utc(12, 0), True),
    ],
)
def test_kigali_working_hours(now, enabled):
    assert decide(now).enabled is enabled


def test_naive_datetimes_are_utc():
    decision = decide(datetime(2024, 5, 1, 19, 30))

    assert decision.schedule_disabled is True
    assert decision.local_time.hour == 21


@pytest.mark.asyncio
async def test_apply_posts_desired_state(make_backend_client, backend):
    backend.on("POST", "/settings/orders-enabled/scheduler", httpx.Response(200, json={"enabled": False, "source": "schedule"}))

    async with make_backend_client() as client:
        result = await OrdersScheduleService(client, "svc-key").apply(utc(20, 0))

    [call] = backend.calls("POST", "/settings/orders-enabled/scheduler")
    assert call.headers["X-Service-Key"] == "svc-key"
    assert json.loads(call.content) == {"enabled": False}
    assert result.admin_override is False
    assert result.summary()["desiredEnabled"] is False


@pytest.mark.asyncio
async def test_apply_reports_admin_override(make_backend_client, backend):
    backend.on("POST", "/settings/orders-enabled/scheduler", httpx.Response(200, json={"enabled": True, "source": "admin"}))

    async with make_backend_client() as client:
        result = await OrdersScheduleService(client, "svc-key").apply(utc(22, 0))

    assert result.admin_override is True
    assert result.summary() == {
        "kigaliTime": "2024-05-02T00:00:00+02:00",
        "desiredEnabled": False,
        "enabled": True,
        "source": "admin",
        "adminOverride": True,
    }


@pytest.mark.asyncio
async def test_scheduled_toggle_uses_its_own_client(make_backend_client, backend):
    backend.on("POST", "/settings/orders-enabled/scheduler", httpx.Response(200, json={"enabled": True, "source": "schedule"}))

    result = await orders_schedule.run_scheduled_toggle("svc-key", utc(8, 0), backend_factory=make_backend_client)

    assert result.enabled is True
    assert len(backend.requests) == 1


def fixed_result(source="schedule") -> ScheduleResult:
    return ScheduleResult(decision=decide(utc(8, 0)), enabled=True, source=source)


def test_script_requires_service_key(monkeypatch):
    monkeypatch.setattr(settings, "SERVICE_API_KEY", None)
    monkeypatch.setattr(settings, "ADMIN_API_KEY", None)

    assert script.main([]) == script.EXIT_MISSING_KEY


def test_script_reports_backend_rejection(monkeypatch):
    monkeypatch.setattr(settings, "SERVICE_API_KEY", "svc-key")

    async def rejected(service_key, now=None):
        raise APIError("Invalid service key", status_code=401)

    monkeypatch.setattr(script, "run_scheduled_toggle", rejected)

    assert script.main([]) == script.EXIT_BACKEND_FAILURE


def test_script_passes_requested_instant(monkeypatch, capsys):
    monkeypatch.setattr(settings, "SERVICE_API_KEY", None)
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "admin-key")
    seen = {}

    async def applied(service_key, now=None):
        seen.update(service_key=service_key, now=now)
        return fixed_result()

    monkeypatch.setattr(script, "run_scheduled_toggle", applied)

    assert script.main(["--at", "2024-05-01T08:00:00+00:00"]) == 0
    assert seen == {"service_key": "admin-key", "now": utc(8, 0)}
    assert "Orders enabled=True" in capsys.readouterr().out


def test_celery_task_skips_without_key(monkeypatch):
    from infrastructure.tasks.tasks.orders_schedule import toggle_orders_schedule

    monkeypatch.setattr(settings, "SERVICE_API_KEY", None)
    monkeypatch.setattr(settings, "ADMIN_API_KEY", None)

    assert toggle_orders_schedule.apply().get()["skipped"] is True


def test_celery_task_returns_summary(monkeypatch):
    from infrastructure.tasks.tasks import orders_schedule as task_module

    monkeypatch.setattr(settings, "SERVICE_API_KEY", "svc-key")

    async def applied(service_key, now=None):
        return fixed_result(source="admin")

    monkeypatch.setattr(task_module, "run_scheduled_toggle", applied)

    summary = task_module.toggle_orders_schedule.apply().get()

    assert summary["adminOverride"] is True
    assert summary["desiredEnabled"] is True
