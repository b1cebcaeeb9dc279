# tripdraw/utils/retry.py
import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Call a function up to max_attempts times with exponential backoff and jitter.

    retry_on lists the exception types worth retrying; anything else is
    raised immediately. should_retry can veto a retry for a given exception.
    """

    def __init__(
        self,
        max_attempts: int = 2,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        jitter: float = 0.25,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        should_retry: Optional[Callable[[BaseException], bool]] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.retry_on = retry_on
        self.should_retry = should_retry
        self._sleep = sleep
        self._rng = rng or random.Random()

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += self._rng.uniform(0, self.jitter)
        return delay

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        attempt = 1
        while True:
            try:
                return fn(*args, **kwargs)
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    raise
                if self.should_retry is not None and not self.should_retry(e):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{getattr(fn, '__name__', 'call')} failed (attempt {attempt}/{self.max_attempts}): {e}; "
                    f"retrying in {delay:.2f}s"
                )
                self._sleep(delay)
                attempt += 1

    def with_veto(self, should_retry: Callable[[BaseException], bool]) -> "RetryPolicy":
        """Copy of this policy that also refuses any retry `should_retry` vetoes."""
        current = self.should_retry

        def combined(exc: BaseException) -> bool:
            return should_retry(exc) and (current is None or current(exc))

        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
            retry_on=self.retry_on,
            should_retry=combined,
            sleep=self._sleep,
            rng=self._rng,
        )
