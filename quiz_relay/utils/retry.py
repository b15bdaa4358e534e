"""
Fixed-delay retry wrapper for fallible coroutines.

Used for page navigation and for outbound calls to collaborators. The delay
is uniform on purpose: no exponential backoff and no jitter.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

from tenacity import (  # type: ignore
    AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed
)

from ..constants import RETRY_POLICIES


class RetryExecutor:
    """Run a coroutine function up to ``max_attempts`` times with a fixed delay."""

    def __init__(self, max_attempts: int, delay: float,
                 retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                 name: str = "operation",
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.logger = logging.getLogger(__name__)
        self.max_attempts = max_attempts
        self.delay = delay
        self.retry_on = retry_on
        self.name = name
        self._sleep = sleep or asyncio.sleep

    def _log_failure(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            f"{self.name}: attempt {retry_state.attempt_number}/{self.max_attempts} failed: {error}. "
            f"Retrying in {self.delay:.1f}s"
        )

    async def run(self, operation: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Invoke ``operation(*args, **kwargs)`` until it succeeds.

        Returns:
            Whatever the operation returns on its first successful attempt

        Raises:
            The last exception once every attempt has failed
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.delay),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=self._log_failure,
            sleep=self._sleep,
            reraise=True
        )
        try:
            async for attempt in retrying:
                with attempt:
                    self.logger.debug(f"{self.name}: attempt {attempt.retry_state.attempt_number}/{self.max_attempts}")
                    return await operation(*args, **kwargs)
        except self.retry_on as e:
            self.logger.error(f"{self.name}: all {self.max_attempts} attempts exhausted: {e}")
            raise


def _from_policy(policy: Dict[str, Any], name: str, **kwargs) -> RetryExecutor:
    return RetryExecutor(policy['max_attempts'], policy['delay'], name=name, **kwargs)


def navigation_retry(policy: Optional[Dict[str, Any]] = None, **kwargs) -> RetryExecutor:
    """Executor for page loads: 1 try + 3 retries, 5 seconds apart."""
    return _from_policy(policy or RETRY_POLICIES['navigation'], "navigation", **kwargs)


def outbound_retry(policy: Optional[Dict[str, Any]] = None, **kwargs) -> RetryExecutor:
    """Executor for calls to collaborators: 3 tries, 2 seconds apart."""
    return _from_policy(policy or RETRY_POLICIES['outbound'], "outbound call", **kwargs)
