"""
Retry and circuit breaking around remote profile writes.

A profile push that fails is retried a few times with growing pauses.
If the remote store keeps failing, the breaker trips and later pushes are
refused locally until ``recovery_timeout`` has passed, so the sync timer
thread does not spend its life waiting on a dead backend.
"""

import functools
import random
import threading
import time
from typing import Callable, Optional, Tuple, Type

from satquest.errors import RemoteStoreError, RemoteSyncError
from satquest.logging_config import get_logger

logger = get_logger(__name__)


class RetryError(RemoteSyncError):
    """Every attempt at a remote write failed."""

    def __init__(self, message: str, last_exception: Optional[Exception] = None):
        super().__init__(message, cause=last_exception)
        self.last_exception = last_exception


class CircuitOpenError(RemoteSyncError):
    """The breaker is open; the remote store was not contacted."""


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: bool = True,
    rng: Optional[random.Random] = None,
) -> float:
    """Pause before retry number ``attempt + 1``: doubling, capped, +/-25% jitter."""
    delay = min(base_delay * (2**attempt), max_delay)
    if jitter:
        delay *= 0.75 + (rng or random).random() * 0.5
    return delay


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    retry_on: Tuple[Type[Exception], ...] = (RemoteStoreError,),
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator that re-runs a remote write on ``retry_on`` errors.

    After ``max_retries`` extra attempts the last error is wrapped in
    RetryError. Errors outside ``retry_on`` propagate on the first try.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_retries:
                        logger.error(f"{func.__name__} gave up after {attempt + 1} attempts: {e}")
                        raise RetryError(
                            f"Remote write failed after {attempt + 1} attempts: {e}",
                            last_exception=e,
                        )
                    delay = backoff_delay(attempt, base_delay, max_delay, jitter)
                    attempt += 1
                    logger.warning(
                        f"{func.__name__} failed ({e}); attempt {attempt + 1} "
                        f"of {max_retries + 1} in {delay:.2f}s"
                    )
                    sleep(delay)

        return wrapper

    return decorator


class CircuitBreaker:
    """
    Trips after ``failure_threshold`` consecutive remote failures.

    ``closed`` passes calls through. ``open`` refuses them with
    CircuitOpenError. Once ``recovery_timeout`` seconds have passed since
    the last failure the breaker reports ``half_open`` and lets calls try
    again; ``success_threshold`` successes close it, one failure reopens it.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self._clock = clock

        self._lock = threading.Lock()
        self._state = self.CLOSED
        self._consecutive_failures = 0
        self._trial_successes = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def _maybe_half_open(self) -> None:
        if self._state != self.OPEN or self._opened_at is None:
            return
        if self._clock() - self._opened_at >= self.recovery_timeout:
            self._state = self.HALF_OPEN
            self._trial_successes = 0

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            if self._state != self.HALF_OPEN:
                return
            self._trial_successes += 1
            if self._trial_successes >= self.success_threshold:
                self._state = self.CLOSED
                self._opened_at = None
                logger.info("Remote store reachable again; profile sync resumed")

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            if self._state == self.HALF_OPEN:
                self._trip()
                logger.warning("Remote store still failing; profile sync paused again")
            elif (
                self._state == self.CLOSED
                and self._consecutive_failures >= self.failure_threshold
            ):
                self._trip()
                logger.warning(
                    f"Profile sync paused for {self.recovery_timeout:.0f}s after "
                    f"{self._consecutive_failures} consecutive failures"
                )
            elif self._state == self.OPEN:
                self._opened_at = self._clock()

    def _trip(self) -> None:
        self._state = self.OPEN
        self._opened_at = self._clock()

    def __call__(self, func: Callable) -> Callable:
        @functools.wraps(func)
        def guarded(*args, **kwargs):
            if self.state == self.OPEN:
                raise CircuitOpenError("Remote store unavailable; sync paused")
            try:
                result = func(*args, **kwargs)
            except RemoteStoreError:
                self.record_failure()
                raise
            self.record_success()
            return result

        return guarded
