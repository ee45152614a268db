from unittest.mock import AsyncMock, patch

import pytest

from academy.application.exceptions.base import DocumentStoreError
from academy.application.retry import RetryPolicy, retry_with_backoff


class Flaky:
    """Fails the given number of times, then returns "ok" """

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise DocumentStoreError(reason=f"failure {self.calls}")
        return "ok"


def test_delay_is_exponential_and_capped():
    policy = RetryPolicy(attempts=6, base_delay=1.0, max_delay=5.0)

    assert [policy.delay(attempt) for attempt in range(5)] == [
        1.0,
        2.0,
        4.0,
        5.0,
        5.0,
    ]


@pytest.mark.asyncio
async def test_success_after_failures():
    func = Flaky(failures=2)

    with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
        result = await retry_with_backoff(
            func,
            RetryPolicy(attempts=3),
            retry_on=(DocumentStoreError,),
        )

    assert result == "ok"
    assert func.calls == 3
    assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_last_error_is_raised():
    func = Flaky(failures=5)

    with patch("asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(DocumentStoreError) as exc_info:
            await retry_with_backoff(
                func,
                RetryPolicy(attempts=3),
                retry_on=(DocumentStoreError,),
            )

    assert exc_info.value.reason == "failure 3"
    assert func.calls == 3


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    async def broken() -> None:
        raise KeyError("id")

    with pytest.raises(KeyError):
        await retry_with_backoff(
            broken,
            RetryPolicy(attempts=3, base_delay=0),
            retry_on=(DocumentStoreError,),
        )


@pytest.mark.asyncio
async def test_single_attempt_does_not_sleep():
    func = Flaky(failures=1)

    with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
        with pytest.raises(DocumentStoreError):
            await retry_with_backoff(
                func,
                RetryPolicy(attempts=1),
                retry_on=(DocumentStoreError,),
            )

    sleep.assert_not_awaited()
