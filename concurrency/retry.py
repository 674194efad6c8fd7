"""
Pattern Relay - Retry Policies
Composable retry with a fixed backoff schedule and a retryable predicate
"""

import time
from dataclasses import dataclass, field
from typing import TypeVar, Callable, Tuple, Optional

from core.errors import (
    BackendError, ContentTooLargeError, is_transient, classify_failure
)
from core.logger import log_warning, log_error

T = TypeVar('T')


@dataclass(frozen=True)
class RetryPolicy:
    """
    One retry policy, parameterized per call site.

    Attributes:
        name: Label used in log lines
        max_attempts: Total attempts including the first
        backoff_schedule: Delay before retry n (last value repeats)
        retryable: Predicate deciding whether an exception is retried
    """
    name: str
    max_attempts: int
    backoff_schedule: Tuple[float, ...] = field(default_factory=tuple)
    retryable: Callable[[Exception], bool] = is_transient

    def delay_for(self, retry_index: int) -> float:
        """Delay before the given retry (0-based)."""
        if not self.backoff_schedule:
            return 0.0
        if retry_index < len(self.backoff_schedule):
            return self.backoff_schedule[retry_index]
        return self.backoff_schedule[-1]

    def run(
        self,
        operation: Callable[[int], T],
        sleep: Callable[[float], None] = time.sleep
    ) -> T:
        """
        Run an operation under this policy.

        Args:
            operation: Callable receiving the attempt index (0-based)
            sleep: Sleep function (injectable for tests)

        Returns:
            The operation's result

        Raises:
            The last exception once attempts are exhausted, or the first
            non-retryable exception immediately
        """
        for attempt in range(self.max_attempts):
            try:
                return operation(attempt)
            except Exception as e:
                if not self.retryable(e):
                    raise

                if attempt >= self.max_attempts - 1:
                    if attempt > 0:
                        log_error(
                            f"[{self.name}] failed after {attempt + 1} attempts: "
                            f"{classify_failure(e).value} - {e}"
                        )
                    raise

                delay = self.delay_for(attempt)
                log_warning(
                    f"[{self.name}] {classify_failure(e).value} "
                    f"(attempt {attempt + 1}/{self.max_attempts}), retrying in {delay:.1f}s..."
                )
                if delay > 0:
                    sleep(delay)

        # max_attempts < 1
        raise ValueError(f"Retry policy {self.name} allows no attempts")


def exponential_schedule(initial_delay: float, multiplier: float, retries: int) -> Tuple[float, ...]:
    """Build a backoff schedule such as (2.0, 4.0)."""
    return tuple(initial_delay * (multiplier ** i) for i in range(retries))


def is_chunk_retryable(error: Exception) -> bool:
    """Chunk-level retries cover any backend failure except oversize content."""
    return isinstance(error, BackendError) and not isinstance(error, ContentTooLargeError)


def orchestration_policy() -> RetryPolicy:
    """
    Top-level retry around a whole pattern run.

    Only connection reset, abort, timeout and rate limit are retried.
    """
    import config

    attempts = getattr(config, 'ORCHESTRATION_MAX_ATTEMPTS', 3)
    return RetryPolicy(
        name="orchestration",
        max_attempts=attempts,
        backoff_schedule=exponential_schedule(
            getattr(config, 'ORCHESTRATION_INITIAL_DELAY', 2.0),
            getattr(config, 'ORCHESTRATION_BACKOFF_MULTIPLIER', 2.0),
            attempts - 1
        ),
        retryable=is_transient
    )


def chunk_policy(delay: Optional[float] = None) -> RetryPolicy:
    """Per-chunk retry used by large-input splitting and batch fallback."""
    import config

    if delay is None:
        delay = getattr(config, 'CHUNK_RETRY_DELAY', 1.0)
    return RetryPolicy(
        name="chunk",
        max_attempts=getattr(config, 'CHUNK_MAX_ATTEMPTS', 2),
        backoff_schedule=(delay,),
        retryable=is_chunk_retryable
    )
