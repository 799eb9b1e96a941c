"""
Debounced remote profile sync.

Every mutation of the user's progress calls ``schedule()`` with the new
snapshot. A single outstanding timer is cancelled and replaced on each
call, so only the most recent snapshot is ever sent. ``flush()`` sends the
pending snapshot immediately and is used on teardown paths.

A failed send leaves the snapshot pending; it goes out with the next
schedule or flush. Nothing here ever raises into gameplay code.
"""

import threading
from typing import Any, Callable, Dict, Optional

from satquest.errors import RemoteStoreError
from satquest.identity import IdentityProvider
from satquest.logging_config import LogContext, get_logger
from satquest.models import UserProgress
from satquest.resilience import CircuitBreaker, retry_with_backoff
from satquest.storage.base import RemoteProfileStore

logger = get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 10.0

# Profile columns written on every sync
SYNCED_FIELDS = (
    "total_xp",
    "day_streak",
    "questions_answered",
    "correct_answers",
    "answer_streak",
    "last_question_date",
    "questions_answered_today",
    "last_valid_streak_date",
    "achievements",
    "answered_question_ids",
)


def profile_fields(progress: UserProgress) -> Dict[str, Any]:
    data = progress.to_dict()
    return {name: data[name] for name in SYNCED_FIELDS}


class ProfileSyncer:
    """Coalescing, debounced writer of progress snapshots to the remote store."""

    def __init__(
        self,
        remote_store: RemoteProfileStore,
        identity: IdentityProvider,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        max_retries: int = 2,
        retry_base_delay: float = 0.5,
        circuit_breaker: Optional[CircuitBreaker] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.remote_store = remote_store
        self.identity = identity
        self.debounce_seconds = debounce_seconds
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[Dict[str, Any]] = None
        self._generation = 0

        self.sent_count = 0
        self.failed_count = 0

        retrying = retry_with_backoff(max_retries=max_retries, base_delay=retry_base_delay)
        self._send = self.circuit_breaker(retrying(self._upsert))

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def schedule(self, progress: UserProgress) -> None:
        """Replace the pending snapshot and restart the debounce timer."""
        fields = profile_fields(progress)
        with self._lock:
            self._pending = fields
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self.debounce_seconds, self._on_timer)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        """Stop the timer without sending. The snapshot stays pending."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def discard(self) -> None:
        """Stop the timer and drop the pending snapshot."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None
            self._generation += 1

    def flush(self) -> bool:
        """
        Send the pending snapshot now, bypassing the debounce.

        Returns:
            True if nothing was pending or the send succeeded
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            fields = self._pending
            generation = self._generation

        if fields is None:
            return True
        return self._deliver(fields, generation)

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
            fields = self._pending
            generation = self._generation
        if fields is not None:
            self._deliver(fields, generation)

    def _deliver(self, fields: Dict[str, Any], generation: int) -> bool:
        identity = self.identity.resolve()
        if not identity:
            logger.warning("No identity available for profile sync; will retry later")
            return False

        try:
            with LogContext(logger, identity=identity, total_xp=fields.get("total_xp")):
                self._send(identity, fields)
        except RemoteStoreError as e:
            self.failed_count += 1
            logger.warning(f"Failed to sync profile stats: {e}")
            return False

        self.sent_count += 1
        with self._lock:
            # A newer snapshot scheduled during the send stays pending
            if self._generation == generation:
                self._pending = None
        return True

    def _upsert(self, identity: str, fields: Dict[str, Any]) -> None:
        self.remote_store.upsert_profile(identity, fields)
        logger.debug(f"Synced profile stats for {identity}")
