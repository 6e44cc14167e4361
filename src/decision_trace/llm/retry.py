"""Bounded exponential backoff around reasoning-service calls.

Failures without a status code are treated as transient. Failures whose
status code is not in the retryable set end the call immediately.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from decision_trace.config.settings import Settings, get_settings
from decision_trace.errors import ReasoningServiceError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_CODES = (429, 500, 502, 503, 504)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0
    retryable_codes: tuple[int, ...] = DEFAULT_RETRYABLE_CODES

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_retries=settings.max_retries,
            initial_delay_ms=settings.retry_initial_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
            retryable_codes=tuple(settings.retryable_status_codes),
        )

    def delay_seconds(self, retry_index: int) -> float:
        """Sleep before retry number ``retry_index`` (0-based)."""
        delay_ms = self.initial_delay_ms * self.backoff_multiplier ** retry_index
        return min(delay_ms, self.max_delay_ms) / 1000


@dataclass
class RetryOutcome(Generic[T]):
    """Non-raising result of an executed call."""

    success: bool
    data: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0


def status_code_of(error: BaseException) -> Optional[int]:
    """Find an HTTP-like status code on an exception, if it carries one."""
    for attr in ("status_code", "status"):
        code = getattr(error, attr, None)
        if isinstance(code, int):
            return code
    response = getattr(error, "response", None)
    code = getattr(response, "status_code", None)
    return code if isinstance(code, int) else None


def _log_before_sleep(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retrying_after_error",
        attempt=retry_state.attempt_number,
        sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        status_code=status_code_of(error) if error else None,
        error=str(error),
    )


class RetryExecutor:
    """Runs async callables under a RetryPolicy.

    Args:
        policy: Backoff policy. Built from settings when omitted.
        sleep: Awaitable sleep used between attempts (injectable for tests).
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, ReasoningServiceError):
            return error.retryable_for(self.policy.retryable_codes)
        code = status_code_of(error)
        if code is None:
            return True
        return code in self.policy.retryable_codes

    def _retrying(self) -> AsyncRetrying:
        policy = self.policy
        return AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=wait_exponential(
                multiplier=policy.initial_delay_ms / 1000,
                exp_base=policy.backoff_multiplier,
                max=policy.max_delay_ms / 1000,
            ),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=_log_before_sleep,
            reraise=True,
        )

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Call ``fn`` until it succeeds or the policy gives up.

        Raises:
            The last error raised by ``fn``.
        """
        async for attempt in self._retrying():
            with attempt:
                result = await fn()
        return result

    async def execute_safe(self, fn: Callable[[], Awaitable[T]]) -> RetryOutcome[T]:
        """Like execute, but reports failure instead of raising."""
        attempts = 0

        async def counted() -> T:
            nonlocal attempts
            attempts += 1
            return await fn()

        try:
            data = await self.execute(counted)
        except Exception as e:
            logger.error("call_failed_after_retries", attempts=attempts, error=str(e))
            return RetryOutcome(success=False, error=e, attempts=attempts)
        return RetryOutcome(success=True, data=data, attempts=attempts)
