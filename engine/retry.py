"""
Retry logic with exponential backoff for async catalog operations.

delay(attempt) = min(max_delay, base_delay * multiplier ** (attempt - 1)),
then perturbed by +/- jitter_fraction. Waiting uses asyncio.sleep, so a retry
only suspends the task that asked for it.
"""
from __future__ import annotations
import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from logging_config import get_logger
from .errors import CatalogError, classify_exception

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    base_delay: float
    max_delay: float
    multiplier: float = 2.0
    jitter_fraction: float = 0.1

    def base_delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt, before jitter."""
        return min(self.max_delay, self.base_delay * (self.multiplier ** (attempt - 1)))


CRITICAL = RetryPolicy(max_attempts=5, base_delay=0.5, max_delay=60.0, multiplier=2.0, jitter_fraction=0.15)
NETWORK = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0, multiplier=2.0, jitter_fraction=0.1)
QUICK = RetryPolicy(max_attempts=2, base_delay=0.5, max_delay=5.0, multiplier=2.0, jitter_fraction=0.05)

PRESETS = {"critical": CRITICAL, "network": NETWORK, "quick": QUICK}


@dataclass
class RetryStats:
    operation_name: str
    success_count: int = 0
    failure_count: int = 0
    total_attempts: int = 0
    retried_attempts: int = 0
    total_duration: float = 0.0
    error_kinds: Dict[str, int] = field(default_factory=dict)

    def record_success(self, attempts: int, duration: float) -> None:
        self.success_count += 1
        self.total_attempts += attempts
        self.retried_attempts += attempts - 1
        self.total_duration += duration

    def record_failure(self, error: CatalogError, attempts: int) -> None:
        self.failure_count += 1
        self.total_attempts += attempts
        self.retried_attempts += attempts - 1
        self.error_kinds[error.kind.value] = self.error_kinds.get(error.kind.value, 0) + 1

    @property
    def success_rate(self) -> float:
        total = self.success_count + self.failure_count
        return self.success_count / total if total else 0.0

    @property
    def average_attempts(self) -> float:
        total = self.success_count + self.failure_count
        return self.total_attempts / total if total else 0.0


class RetryExecutor:
    """
    Runs async operations under a RetryPolicy.

    Args:
        sleep: Awaitable sleep function (tests inject a recorder)
        uniform: Random source for jitter, called as uniform(low, high)
        clock: Monotonic clock used for duration statistics
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        uniform: Callable[[float, float], float] = random.uniform,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sleep = sleep
        self._uniform = uniform
        self._clock = clock
        self._stats: Dict[str, RetryStats] = {}

    def compute_delay(self, attempt: int, policy: RetryPolicy, error: Optional[CatalogError] = None) -> float:
        delay = policy.base_delay_for(attempt)
        jitter = delay * policy.jitter_fraction
        if jitter > 0:
            delay += self._uniform(-jitter, jitter)
        # Honor a server-provided Retry-After, within the policy cap
        if error is not None and error.retry_after:
            delay = max(delay, min(error.retry_after, policy.max_delay))
        return max(0.0, delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy = NETWORK,
        operation_name: Optional[str] = None,
    ) -> T:
        """
        Execute ``operation`` until it succeeds, fails permanently, or the
        policy runs out of attempts.

        Raises:
            CatalogError: the last error, with its classification preserved
        """
        start = self._clock()
        attempt = 0

        while True:
            attempt += 1
            try:
                result = await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = classify_exception(e)

                if not error.retryable or attempt >= policy.max_attempts:
                    if operation_name:
                        self._stats_for(operation_name).record_failure(error, attempt)
                    if not error.retryable:
                        logger.debug(f"{operation_name or 'operation'} failed permanently: {error.kind.value}")
                    else:
                        logger.warning(
                            f"{operation_name or 'operation'} gave up after {attempt} attempts: {error.kind.value}"
                        )
                    if error is e:
                        raise
                    raise error from e

                delay = self.compute_delay(attempt, policy, error)
                logger.debug(
                    f"Retry attempt {attempt}/{policy.max_attempts} for {operation_name or 'operation'} "
                    f"after {delay:.1f}s: {error.kind.value}"
                )
                await self._sleep(delay)
                continue

            if operation_name:
                self._stats_for(operation_name).record_success(attempt, self._clock() - start)
            return result

    def _stats_for(self, operation_name: str) -> RetryStats:
        stats = self._stats.get(operation_name)
        if stats is None:
            stats = self._stats[operation_name] = RetryStats(operation_name)
        return stats

    def statistics(self) -> Dict[str, RetryStats]:
        return dict(self._stats)

    def clear_statistics(self) -> None:
        self._stats.clear()
