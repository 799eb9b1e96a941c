"""
Tests for the debounced remote profile syncer.
"""

from unittest.mock import Mock

import pytest

from conftest import answer_many
from satquest.errors import RemoteStoreError
from satquest.identity import DeviceIdentity, StaticIdentity
from satquest.models import UserProgress
from satquest.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    RetryError,
    backoff_delay,
    retry_with_backoff,
)
from satquest.storage import InMemoryProfileStore
from satquest.sync import SYNCED_FIELDS, ProfileSyncer, profile_fields


def make_syncer(store, timer_factory, identity="device-1", **kwargs):
    kwargs.setdefault("max_retries", 0)
    kwargs.setdefault("retry_base_delay", 0)
    return ProfileSyncer(
        store,
        StaticIdentity(identity),
        debounce_seconds=10.0,
        timer_factory=timer_factory,
        **kwargs,
    )


def test_schedule_starts_daemon_timer(syncer, timers):
    syncer.schedule(UserProgress(total_xp=10))

    assert len(timers) == 1
    assert timers[0].interval == 10.0
    assert timers[0].daemon
    assert timers[0].started
    assert syncer.has_pending


def test_rapid_changes_coalesce_to_latest(syncer, timers, remote_store):
    """Test that only the last snapshot in a burst reaches the remote store."""
    for xp in (10, 20, 30):
        syncer.schedule(UserProgress(total_xp=xp))

    assert [t.cancelled for t in timers] == [True, True, False]

    for timer in timers:
        timer.fire()

    assert len(remote_store.upsert_calls) == 1
    call = remote_store.upsert_calls[0]
    assert call["identity"] == "device-1"
    assert call["fields"]["total_xp"] == 30
    assert not syncer.has_pending


def test_flush_sends_immediately(syncer, timers, remote_store):
    syncer.schedule(UserProgress(total_xp=15))

    assert syncer.flush() is True
    assert timers[0].cancelled
    assert remote_store.get_profile("device-1")["total_xp"] == 15
    assert not syncer.has_pending
    assert syncer.sent_count == 1


def test_flush_with_nothing_pending(syncer, remote_store):
    assert syncer.flush() is True
    assert remote_store.upsert_calls == []


def test_failed_send_stays_pending(timer_factory):
    """Test that a failed upsert is logged, counted and retried on the next flush."""
    store = Mock(spec=InMemoryProfileStore)
    store.upsert_profile.side_effect = RemoteStoreError("connection reset")
    syncer = make_syncer(store, timer_factory)

    syncer.schedule(UserProgress(total_xp=40))

    assert syncer.flush() is False
    assert syncer.has_pending
    assert syncer.failed_count == 1

    store.upsert_profile.side_effect = None
    assert syncer.flush() is True
    assert not syncer.has_pending
    store.upsert_profile.assert_called_with("device-1", profile_fields(UserProgress(total_xp=40)))


def test_transient_failure_is_retried(timer_factory):
    store = Mock(spec=InMemoryProfileStore)
    store.upsert_profile.side_effect = [RemoteStoreError("timeout"), None]
    syncer = make_syncer(store, timer_factory, max_retries=2)

    syncer.schedule(UserProgress(total_xp=5))

    assert syncer.flush() is True
    assert store.upsert_profile.call_count == 2


def test_circuit_opens_after_repeated_failures(timer_factory):
    store = Mock(spec=InMemoryProfileStore)
    store.upsert_profile.side_effect = RemoteStoreError("service down")
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
    syncer = make_syncer(store, timer_factory, circuit_breaker=breaker)

    syncer.schedule(UserProgress(total_xp=5))
    syncer.flush()
    syncer.flush()
    result = syncer.flush()

    assert result is False
    assert breaker.state == CircuitBreaker.OPEN
    assert store.upsert_profile.call_count == 2
    assert syncer.has_pending


def test_missing_identity_keeps_snapshot(remote_store, timer_factory):
    syncer = make_syncer(remote_store, timer_factory, identity=None)
    syncer.schedule(UserProgress(total_xp=5))

    assert syncer.flush() is False
    assert syncer.has_pending
    assert remote_store.upsert_calls == []


def test_newer_snapshot_during_send_stays_pending(timer_factory):
    """Test that a change scheduled while a send is in flight is not lost."""
    store = Mock(spec=InMemoryProfileStore)
    syncer = make_syncer(store, timer_factory)

    def schedule_during_send(identity, fields):
        if fields["total_xp"] == 10:
            syncer.schedule(UserProgress(total_xp=20))

    store.upsert_profile.side_effect = schedule_during_send

    syncer.schedule(UserProgress(total_xp=10))
    assert syncer.flush() is True
    assert syncer.has_pending

    assert syncer.flush() is True
    assert not syncer.has_pending
    assert store.upsert_profile.call_args[0][1]["total_xp"] == 20


def test_discard_drops_pending(syncer, timers, remote_store):
    syncer.schedule(UserProgress(total_xp=5))
    syncer.discard()

    assert timers[0].cancelled
    assert not syncer.has_pending
    assert syncer.flush() is True
    assert remote_store.upsert_calls == []


def test_cancel_keeps_pending(syncer, timers):
    syncer.schedule(UserProgress(total_xp=5))
    syncer.cancel()

    assert timers[0].cancelled
    assert syncer.has_pending


def test_profile_fields_use_profile_columns():
    progress = UserProgress(total_xp=10, answered_question_ids=["q1"])

    fields = profile_fields(progress)

    assert tuple(fields) == SYNCED_FIELDS
    assert fields["answered_question_ids"] == ["q1"]
    assert "collected_achievements" not in fields


def test_engine_mutations_schedule_sync(engine, timers, remote_store, clock):
    answer_many(engine, 3)

    assert len(timers) == 3
    timers[-1].fire()

    row = remote_store.get_profile("device-1")
    assert row["total_xp"] == 30
    assert row["questions_answered"] == 3
    assert row["last_question_date"] == clock.today.isoformat()


def test_engine_shutdown_flushes(engine, syncer, timers, remote_store):
    engine.record_practice(True, "q1")
    engine.shutdown()

    assert remote_store.get_profile("device-1")["total_xp"] == 10
    assert timers[-1].cancelled
    assert not syncer.has_pending


def test_device_identity_is_stable(tmp_path):
    path = tmp_path / "state" / "device_id"

    first = DeviceIdentity(path).resolve()
    second = DeviceIdentity(path).resolve()

    assert first
    assert first == second
    assert path.read_text().strip() == first


def test_device_identity_unwritable(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")

    assert DeviceIdentity(blocker / "device_id").resolve() is None


# ===== Retry and circuit breaker =====


def test_backoff_delay_doubles_and_caps():
    assert [backoff_delay(n, 0.5, 3.0, jitter=False) for n in range(4)] == [0.5, 1.0, 2.0, 3.0]


def failing_push(*errors):
    """A remote write that raises ``errors`` in turn, then succeeds."""
    calls = []
    pending = list(errors)

    def push():
        calls.append(1)
        if pending:
            raise pending.pop(0)

    return push, calls


def test_retry_sleeps_between_attempts_then_gives_up():
    pauses = []
    push, calls = failing_push(*[RemoteStoreError("timeout")] * 3)
    retrying = retry_with_backoff(max_retries=2, base_delay=1.0, jitter=False, sleep=pauses.append)

    with pytest.raises(RetryError) as excinfo:
        retrying(push)()

    assert len(calls) == 3
    assert pauses == [1.0, 2.0]
    assert isinstance(excinfo.value.last_exception, RemoteStoreError)


def test_retry_does_not_catch_other_errors():
    push, calls = failing_push(KeyError("user_id"))

    with pytest.raises(KeyError):
        retry_with_backoff(max_retries=2, sleep=lambda _: None)(push)()

    assert len(calls) == 1


def test_circuit_half_opens_after_recovery_timeout():
    now = [100.0]
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, clock=lambda: now[0])
    push, calls = failing_push(RemoteStoreError("down"))
    guarded = breaker(push)

    with pytest.raises(RemoteStoreError):
        guarded()
    with pytest.raises(CircuitOpenError):
        guarded()

    now[0] += 30
    assert breaker.state == CircuitBreaker.HALF_OPEN
    guarded()
    assert breaker.state == CircuitBreaker.CLOSED
    assert len(calls) == 2
