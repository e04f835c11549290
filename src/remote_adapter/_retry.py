"""RetryPolicy — bounded retry with capped exponential backoff."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from remote_adapter._config import RetryConfig
from remote_adapter._errors import ErrorKind, StorageError
from remote_adapter._models import RetryAttempt

if TYPE_CHECKING:
    from collections.abc import Iterable

    from remote_adapter._types import Sleeper

T = TypeVar("T")

log = logging.getLogger(__name__)

DEFAULT_RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset({ErrorKind.CONNECTION, ErrorKind.RATE_LIMITED})


class RetryPolicy:
    """Re-runs an operation while it fails with a retryable error kind.

    The delay before retry ``n`` (0-based) is
    ``min(base_delay * backoff_multiplier ** n, max_delay)``. After the last
    attempt the final error is re-raised unchanged. A fresh
    :class:`tenacity.Retrying` is built per :meth:`execute` call, so one
    policy can be shared between threads.

    :param max_retries: Retries after the initial attempt.
    :param base_delay: Delay before the first retry, in seconds.
    :param backoff_multiplier: Growth factor between retries.
    :param max_delay: Upper bound on any single delay.
    :param retryable_kinds: Error kinds worth retrying.
    :param sleep: Sleep function, replaceable in tests.
    :param on_retry: Called with a :class:`RetryAttempt` before each sleep.
    :raises InvalidConfiguration: On out-of-range parameters.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        backoff_multiplier: float = 2.0,
        max_delay: float = 30.0,
        retryable_kinds: Iterable[ErrorKind] = DEFAULT_RETRYABLE_KINDS,
        *,
        sleep: Sleeper = time.sleep,
        on_retry: Callable[[RetryAttempt], None] | None = None,
    ) -> None:
        # RetryConfig carries the range checks
        RetryConfig(
            max_retries=max_retries,
            base_delay=base_delay,
            backoff_multiplier=backoff_multiplier,
            max_delay=max_delay,
        )
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_delay = max_delay
        self.retryable_kinds = frozenset(retryable_kinds)
        self._sleep = sleep
        self._on_retry = on_retry

    @classmethod
    def from_config(cls, config: RetryConfig, **kwargs: object) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            backoff_multiplier=config.backoff_multiplier,
            max_delay=config.max_delay,
            **kwargs,  # type: ignore[arg-type]
        )

    def __repr__(self) -> str:
        kinds = sorted(k.value for k in self.retryable_kinds)
        return (
            f"RetryPolicy(max_retries={self.max_retries}, base_delay={self.base_delay}, "
            f"backoff_multiplier={self.backoff_multiplier}, max_delay={self.max_delay}, retryable_kinds={kinds})"
        )

    def should_retry(self, error: BaseException) -> bool:
        """Classify ``error`` by kind. Messages are never inspected.

        ``OPERATION`` errors are retried only when flagged ``transient``.
        """
        if not isinstance(error, StorageError):
            return False
        if error.kind is ErrorKind.OPERATION:
            return bool(getattr(error, "transient", False))
        return error.kind in self.retryable_kinds

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based)."""
        return float(min(self.base_delay * self.backoff_multiplier**attempt, self.max_delay))

    def execute(self, operation: Callable[[], T], *, description: str = "") -> T:
        """Run ``operation`` until it succeeds, fails permanently, or retries run out."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.backoff_multiplier, max=self.max_delay),
            retry=retry_if_exception(self.should_retry),
            before_sleep=self._before_sleep(description or getattr(operation, "__name__", "operation")),
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(operation)

    def _before_sleep(self, description: str) -> Callable[[RetryCallState], None]:
        def hook(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            log.warning(
                "Retrying %s in %.2fs (attempt %d of %d): %s",
                description,
                delay,
                retry_state.attempt_number,
                self.max_retries + 1,
                error,
            )
            if self._on_retry is not None and error is not None:
                self._on_retry(RetryAttempt(attempt=retry_state.attempt_number, delay=delay, error=error))

        return hook
