import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * 2**attempt, self.max_delay)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
) -> T:
    """
    Run func, retrying on the given errors with exponential backoff

    Delays grow as base_delay * 2**attempt and are capped at max_delay.
    The last error is re-raised once attempts are exhausted.
    """
    for attempt in range(policy.attempts - 1):
        try:
            return await func()
        except retry_on as e:
            delay = policy.delay(attempt)
            logger.warning(
                "Retry attempt %s/%s after error: %s. Retrying in %ss",
                attempt + 1,
                policy.attempts - 1,
                e,
                delay,
            )
            await asyncio.sleep(delay)

    return await func()
