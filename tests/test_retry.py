import pytest

from slidecast.retry import RetryPolicy, with_retry


class Flaky:
    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls} failed")
        return "ok"


def recording_sleep():
    waits = []

    async def sleep(seconds):
        waits.append(seconds)

    return waits, sleep


def test_delays_grow_exponentially():
    assert RetryPolicy(max_retries=3, initial_delay=1.0, multiplier=2.0).delays() == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_fail_twice_then_succeed():
    waits, sleep = recording_sleep()
    operation = Flaky(failures=2)

    result = await with_retry(operation, max_retries=3, initial_delay=1.0, multiplier=2.0, sleep=sleep)

    assert result == "ok"
    assert operation.calls == 3
    assert waits == [1.0, 2.0]


@pytest.mark.asyncio
async def test_final_error_is_reraised_after_all_retries():
    waits, sleep = recording_sleep()
    operation = Flaky(failures=10)

    with pytest.raises(ConnectionError, match="attempt 4 failed"):
        await with_retry(operation, max_retries=3, initial_delay=1.0, multiplier=2.0, sleep=sleep)

    assert operation.calls == 4
    assert waits == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_zero_retries_calls_once():
    waits, sleep = recording_sleep()
    operation = Flaky(failures=1)

    with pytest.raises(ConnectionError):
        await RetryPolicy(max_retries=0, sleep=sleep).call(operation)

    assert operation.calls == 1
    assert waits == []


@pytest.mark.asyncio
async def test_errors_outside_retry_on_are_not_retried():
    waits, sleep = recording_sleep()
    operation = Flaky(failures=1)
    policy = RetryPolicy(max_retries=3, retry_on=(ValueError,), sleep=sleep)

    with pytest.raises(ConnectionError):
        await policy.call(operation)

    assert operation.calls == 1
