import pytest

from core.retry import RetryPolicy, constant_backoff, exponential_backoff, linear_backoff


class Flaky:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self, *args):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_backoff_helpers():
    assert [linear_backoff(0.5)(n) for n in (1, 2, 3)] == [0.5, 1.0, 1.5]
    assert constant_backoff(5)(7) == 5
    assert [exponential_backoff(0.5, 2.0)(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 2.0]


@pytest.mark.asyncio
async def test_retries_on_result_until_accepted(no_sleep):
    fn = Flaky(500, 502, 200)
    policy = RetryPolicy(
        name="test",
        max_attempts=3,
        backoff=linear_backoff(0.5),
        retry_on_result=lambda status: status >= 300,
        sleep=no_sleep,
    )

    assert await policy.run(fn) == 200
    assert fn.calls == 3
    assert no_sleep.waits == [0.5, 1.0]


@pytest.mark.asyncio
async def test_exhaustion_returns_last_result(no_sleep):
    fn = Flaky(500)
    policy = RetryPolicy(name="test", max_attempts=3, retry_on_result=lambda s: s >= 300, sleep=no_sleep)

    assert await policy.run(fn) == 500
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_exhaustion_reraises_last_exception(no_sleep):
    fn = Flaky(ConnectionError("down"))
    policy = RetryPolicy(name="test", max_attempts=2, retry_on_exceptions=(ConnectionError,), sleep=no_sleep)

    with pytest.raises(ConnectionError):
        await policy.run(fn)
    assert fn.calls == 2


@pytest.mark.asyncio
async def test_unlisted_exception_is_not_retried(no_sleep):
    fn = Flaky(ValueError("bad"))
    policy = RetryPolicy(name="test", max_attempts=3, retry_on_exceptions=(ConnectionError,), sleep=no_sleep)

    with pytest.raises(ValueError):
        await policy.run(fn)
    assert fn.calls == 1
    assert no_sleep.waits == []
