import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Exponential backoff retry strategy for async operations

    The first failure waits ``initial_delay`` seconds, each following wait
    is ``multiplier`` times longer. After ``max_retries`` retries the last
    exception is raised unchanged.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delays(self):
        """Waits between attempts, in order"""
        return [self.initial_delay * self.multiplier ** i for i in range(self.max_retries)]

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.initial_delay, exp_base=self.multiplier),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self.sleep,
            reraise=True,
        )

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        async for attempt in self._retrying():
            with attempt:
                result = await operation()
        return result


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    multiplier: float = 2.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with exponential backoff, re-raising the final failure"""
    policy = RetryPolicy(
        max_retries=max_retries,
        initial_delay=initial_delay,
        multiplier=multiplier,
        sleep=sleep,
    )
    return await policy.call(operation)
