"""
营业时段调度

Ordering is disabled outside Kigali working hours (21:30 to 09:00 local,
UTC+2 all year). The backend owns the switch and ignores the scheduler while
an admin override is in place; ``source == "admin"`` in its answer says so.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from core.config import SchedulerSettings, settings
from core.logging_config import get_logger
from infrastructure.external.api_clients.backend import BackendClient


logger = get_logger(__name__)


def minute_of_day(hhmm: str) -> int:
    """``"21:30"`` -> ``1290``"""
    hours, _, minutes = hhmm.partition(":")
    return int(hours) * 60 + int(minutes or 0)


@dataclass(frozen=True)
class ScheduleDecision:
    local_time: datetime
    minute_of_day: int
    schedule_disabled: bool

    @property
    def enabled(self) -> bool:
        return not self.schedule_disabled


def decide(now: Optional[datetime] = None, config: Optional[SchedulerSettings] = None) -> ScheduleDecision:
    config = config or settings.scheduler
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    local = current.astimezone(timezone(timedelta(hours=config.utc_offset_hours)))
    minute = local.hour * 60 + local.minute

    off_start = minute_of_day(config.off_start)
    off_end = minute_of_day(config.off_end)
    if off_start > off_end:
        disabled = minute >= off_start or minute < off_end
    else:
        disabled = off_start <= minute < off_end
    return ScheduleDecision(local_time=local, minute_of_day=minute, schedule_disabled=disabled)


@dataclass(frozen=True)
class ScheduleResult:
    decision: ScheduleDecision
    enabled: Optional[bool]
    source: Optional[str]

    @property
    def admin_override(self) -> bool:
        return self.source == "admin"

    def summary(self) -> dict[str, Any]:
        return {
            "kigaliTime": self.decision.local_time.isoformat(),
            "desiredEnabled": self.decision.enabled,
            "enabled": self.enabled,
            "source": self.source,
            "adminOverride": self.admin_override,
        }


class OrdersScheduleService:
    def __init__(self, backend: BackendClient, service_key: str):
        self._backend = backend
        self._service_key = service_key

    async def apply(self, now: Optional[datetime] = None) -> ScheduleResult:
        """计算期望状态并写入后端；后端拒绝时抛出 APIError"""
        decision = decide(now)
        logger.info(
            "orders_schedule_evaluated",
            kigali_time=decision.local_time.isoformat(),
            schedule_disabled=decision.schedule_disabled,
            desired_enabled=decision.enabled,
        )

        response = await self._backend.apply_orders_schedule(decision.enabled, self._service_key)
        body: Any = response.data if isinstance(response.data, dict) else {}
        result = ScheduleResult(decision=decision, enabled=body.get("enabled"), source=body.get("source"))

        if result.admin_override:
            logger.info("orders_schedule_admin_override", enabled=result.enabled)
        else:
            logger.info("orders_schedule_applied", enabled=result.enabled, source=result.source)
        return result


async def run_scheduled_toggle(
    service_key: str,
    now: Optional[datetime] = None,
    *,
    backend_factory: Callable[[], BackendClient] = BackendClient,
) -> ScheduleResult:
    """一次性执行：创建后端客户端、写入期望状态并关闭客户端"""
    async with backend_factory() as backend:
        return await OrdersScheduleService(backend, service_key).apply(now)
