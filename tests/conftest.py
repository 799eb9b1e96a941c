"""
Pytest configuration and shared fixtures for SAT Quest tests.
"""

from datetime import date, timedelta

import pytest

from satquest.gamification import GamificationEngine
from satquest.identity import StaticIdentity
from satquest.leaderboard import LeaderboardService
from satquest.questions import Question, QuestionBank
from satquest.storage import InMemoryProfileStore, InMemoryProgressStore
from satquest.sync import ProfileSyncer


class FakeClock:
    """Callable returning a settable 'today'."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today

    def advance(self, days: int = 1) -> date:
        self.today += timedelta(days=days)
        return self.today


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


@pytest.fixture
def clock():
    return FakeClock(date(2026, 3, 2))


@pytest.fixture
def timers():
    """Every FakeTimer created by the syncer fixture, in creation order."""
    return []


@pytest.fixture
def timer_factory(timers):
    def factory(interval, function):
        timer = FakeTimer(interval, function)
        timers.append(timer)
        return timer

    return factory


@pytest.fixture
def local_store():
    return InMemoryProgressStore()


@pytest.fixture
def remote_store():
    return InMemoryProfileStore()


@pytest.fixture
def syncer(remote_store, timer_factory):
    return ProfileSyncer(
        remote_store,
        StaticIdentity("device-1"),
        debounce_seconds=10.0,
        max_retries=0,
        retry_base_delay=0,
        timer_factory=timer_factory,
    )


@pytest.fixture
def engine(local_store, syncer, clock):
    return GamificationEngine(local_store, syncer=syncer, clock=clock)


@pytest.fixture
def leaderboards(remote_store):
    return LeaderboardService(remote_store, tie_break="stable")


@pytest.fixture
def question_bank():
    return QuestionBank(
        [
            Question(
                id="math-001",
                question="If 3x + 5 = 20, what is x?",
                options=["3", "5", "15", "25"],
                correct_answer=1,
                explanation="3x = 15",
                category="math",
            ),
            Question(
                id="reading-001",
                question="'Tabled' most nearly means:",
                options=["presented", "postponed", "rejected", "signed"],
                correct_answer=1,
                category="reading",
            ),
            Question(
                id="writing-001",
                question="Each of the students ___ a calculator.",
                options=["have", "has"],
                correct_answer=1,
                category="writing",
            ),
        ]
    )


def answer_many(engine, count, is_correct=True, prefix="q"):
    """Record ``count`` answers with distinct question ids; returns the results."""
    return [engine.record_practice(is_correct, f"{prefix}{i}") for i in range(count)]
