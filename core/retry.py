"""
重试策略

A small, named wrapper around tenacity so that every bounded retry loop in the
gateway (payment linking, token refresh, gateway status polling) is declared
with the same four knobs instead of an inline ``for attempt in range(...)``.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    retry_never,
    stop_after_attempt,
)

from core.logging_config import get_logger


logger = get_logger(__name__)

Backoff = Callable[[int], float]


def linear_backoff(step: float) -> Backoff:
    """``step * attempt`` seconds after the n-th failed attempt."""
    return lambda attempt: step * attempt


def constant_backoff(seconds: float) -> Backoff:
    return lambda attempt: seconds


def exponential_backoff(base: float, cap: float) -> Backoff:
    return lambda attempt: min(cap, base * (2 ** (attempt - 1)))


@dataclass(frozen=True)
class RetryPolicy:
    """
    有界重试策略

    Args:
        max_attempts: 总尝试次数（含首次）
        backoff: 第 n 次失败后的等待秒数
        retry_on_result: 返回 True 表示该结果需要重试
        retry_on_exceptions: 需要重试的异常类型
        sleep: 可注入的等待函数（测试用）

    When attempts are exhausted the last outcome is returned as-is: the last
    result if the final attempt returned, or its exception re-raised.
    """
    name: str
    max_attempts: int = 3
    backoff: Backoff = field(default=linear_backoff(0.5))
    retry_on_result: Optional[Callable[[Any], bool]] = None
    retry_on_exceptions: Tuple[Type[BaseException], ...] = ()
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.backoff(retry_state.attempt_number)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.info(
            "retry_scheduled",
            policy=self.name,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            wait_seconds=self._wait(retry_state),
            error=str(outcome.exception()) if outcome is not None and outcome.failed else None,
        )

    def _retrying(self) -> AsyncRetrying:
        condition = retry_never
        if self.retry_on_exceptions:
            condition = condition | retry_if_exception_type(self.retry_on_exceptions)
        if self.retry_on_result is not None:
            condition = condition | retry_if_result(self.retry_on_result)
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=condition,
            sleep=self.sleep,
            before_sleep=self._before_sleep,
            retry_error_callback=lambda state: state.outcome.result(),
        )

    async def run(self, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        return await self._retrying()(fn, *args, **kwargs)
