"""
Durable step execution for the generation workflow.

A step is the unit of retry: it either fully succeeds or is retried with
backoff until its budget runs out. ``NonRetryableError`` short-circuits the
retry loop and aborts the run. Sleeps go through the runner so tests (and
alternative hosts) can replace them.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    wait_incrementing,
)

from ..core.config import SmolgenSettings, get_settings
from ..core.errors import NonRetryableError, ProviderError, StepFailedError
from ..core.logging import workflow_logger
from ..core.result import Result

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class StepConfig:
    """Retry, backoff and timeout policy for one step"""

    retries: int = 5
    delay: float = 10.0
    backoff: str = "exponential"
    timeout: float = 300.0

    def with_retries(self, retries: int) -> "StepConfig":
        return replace(self, retries=retries)

    def wait_strategy(self):
        if self.backoff == "constant":
            return wait_fixed(self.delay)
        if self.backoff == "linear":
            return wait_incrementing(start=self.delay, increment=self.delay)
        return wait_exponential(multiplier=self.delay, exp_base=2)

    @classmethod
    def from_settings(cls, settings: Optional[SmolgenSettings] = None) -> "StepConfig":
        settings = settings or get_settings()
        return cls(**settings.get_step_config())


class StepRunner:
    """Runs named workflow steps with retries, backoff and timeouts"""

    def __init__(self, sleep: Optional[SleepFunc] = None):
        self._sleep = sleep or asyncio.sleep

    async def do(
        self,
        name: str,
        config: StepConfig,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute ``func`` as step ``name``; raises ``StepFailedError`` once retries are spent"""

        start_time = time.time()
        attempts = 0

        retrying = AsyncRetrying(
            stop=stop_after_attempt(config.retries + 1),
            wait=config.wait_strategy(),
            retry=retry_if_not_exception_type(NonRetryableError),
            sleep=self._sleep,
            before_sleep=lambda state: workflow_logger.log_step_retry(
                step=name,
                attempt=state.attempt_number,
                error=str(state.outcome.exception()),
                delay_s=state.next_action.sleep if state.next_action else 0.0,
            ),
            reraise=False,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    workflow_logger.log_step_start(step=name, attempt=attempts)
                    result = await asyncio.wait_for(func(), timeout=config.timeout)
        except NonRetryableError as e:
            workflow_logger.log_step_error(step=name, error=str(e), attempts=attempts, retryable=False)
            raise
        except RetryError as e:
            error = e.last_attempt.exception()
            workflow_logger.log_step_error(step=name, error=str(error), attempts=attempts)
            raise StepFailedError(name, attempts, error) from error

        workflow_logger.log_step_complete(
            step=name,
            duration_ms=(time.time() - start_time) * 1000,
            attempts=attempts,
        )
        return result

    async def sleep(self, name: str, seconds: float) -> None:
        """Explicit workflow sleep"""
        workflow_logger.log_sleep(name=name, seconds=seconds)
        await self._sleep(seconds)


def require(result: Result[T], operation: str) -> T:
    """Unwrap a provider result inside a step; an error result becomes a retryable ProviderError"""
    if result.is_err():
        raise ProviderError(f"{operation} failed: {result.error}")
    return result.data


__all__ = ["StepConfig", "StepRunner", "SleepFunc", "require"]
