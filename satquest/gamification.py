"""
Gamification engine for SAT Quest.

Owns the in-memory UserProgress and applies practice events to it:
XP accrual, answer and day streaks, the daily question quota and
achievement unlocking. Every mutation is persisted to the local store
immediately and handed to the debounced remote syncer.

The engine is a plain object built by the composition root. Mutating
calls are read-modify-write over shared state without internal locking;
callers serialize them. ``initialize()`` is the exception and may be
called concurrently.
"""

import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from satquest.achievements import (
    achievement_statuses,
    all_definitions,
    evaluate_achievements,
    get_definition,
)
from satquest.logging_config import get_logger
from satquest.models import (
    MAX_ANSWERED_QUESTIONS,
    AchievementDefinition,
    AchievementStatus,
    BonusResult,
    PracticeResult,
    UserProgress,
)
from satquest.storage.base import LocalProgressStore
from satquest.sync import ProfileSyncer

logger = get_logger(__name__)

DAILY_QUOTA = 5
XP_PER_CORRECT = 10
XP_PER_ATTEMPT = 5  # Even for wrong answers


class GamificationEngine:
    """Canonical owner of one user's progress while the app runs."""

    def __init__(
        self,
        local_store: LocalProgressStore,
        syncer: Optional[ProfileSyncer] = None,
        catalog: Optional[Sequence[AchievementDefinition]] = None,
        question_source: Optional[Any] = None,
        clock: Callable[[], date] = date.today,
        daily_quota: int = DAILY_QUOTA,
        xp_per_correct: int = XP_PER_CORRECT,
        xp_per_attempt: int = XP_PER_ATTEMPT,
    ):
        """
        Args:
            local_store: Device-local progress persistence
            syncer: Debounced remote writer; None disables remote sync
            catalog: Ordered achievement definitions (defaults to the built-in catalog)
            question_source: Anything supporting ``question_id in source``;
                when given, unknown ids are never marked as answered
            clock: Returns today's device-local date
        """
        self.local_store = local_store
        self.syncer = syncer
        self.catalog = list(catalog) if catalog is not None else all_definitions()
        self.question_source = question_source
        self.clock = clock
        self.daily_quota = daily_quota
        self.xp_per_correct = xp_per_correct
        self.xp_per_attempt = xp_per_attempt

        self._progress = UserProgress()
        self._answered: Set[str] = set()
        self._initialized = False
        self._init_lock = threading.Lock()

    # ===== Lifecycle =====

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Load progress from the local store, or start from defaults.

        Safe to call any number of times from any number of threads: the
        first caller loads, concurrent callers wait for that load and
        reuse it. Never raises; unreadable storage means fresh defaults.
        """
        if self._initialized:
            return

        with self._init_lock:
            if self._initialized:
                return

            saved = self.local_store.get()
            if saved is not None:
                self._progress = saved
                logger.info(
                    f"Loaded progress: {saved.total_xp} XP, {saved.day_streak}-day streak, "
                    f"{saved.questions_answered} answered"
                )
            else:
                self._progress = UserProgress()
                logger.info("No saved progress found, starting fresh")

            self._answered = set(self._progress.answered_question_ids)

            if self._expire_broken_streak(self.clock()):
                self._persist()

            self._initialized = True

    def flush(self) -> bool:
        """Push the latest progress to the remote store immediately."""
        if self.syncer is None:
            return True
        return self.syncer.flush()

    def shutdown(self) -> None:
        """Flush pending remote state and stop the sync timer."""
        if self.syncer is not None:
            self.syncer.flush()
            self.syncer.cancel()

    def clear_all(self) -> None:
        """
        Administrative reset: wipe local progress and start from defaults.

        Pending remote writes are dropped; the remote profile is left as is.
        """
        with self._init_lock:
            if self.syncer is not None:
                self.syncer.discard()
            self.local_store.clear()
            self._progress = UserProgress()
            self._answered = set()
            self._initialized = True
        logger.warning("All local progress cleared")

    # ===== Queries =====

    def get_progress(self) -> UserProgress:
        """Snapshot of current progress. Mutating it does not affect the engine."""
        self.initialize()
        return self._progress.copy()

    def has_answered_question(self, question_id: str) -> bool:
        self.initialize()
        return str(question_id) in self._answered

    def get_answered_question_ids(self) -> Set[str]:
        self.initialize()
        return set(self._answered)

    def get_achievements(self) -> List[AchievementStatus]:
        """All achievements with this user's unlock and collection state."""
        self.initialize()
        return achievement_statuses(self._progress, self.catalog)

    def get_stats(self) -> Dict[str, Any]:
        """Summary numbers for a progress screen."""
        self.initialize()
        progress = self._progress
        today = self.clock()

        answered_today = (
            progress.questions_answered_today if progress.last_question_date == today else 0
        )

        return {
            "total_xp": progress.total_xp,
            "day_streak": progress.day_streak,
            "answer_streak": progress.answer_streak,
            "questions_answered": progress.questions_answered,
            "correct_answers": progress.correct_answers,
            "accuracy": progress.accuracy,
            "questions_answered_today": answered_today,
            "daily_quota": self.daily_quota,
            "daily_progress_percent": min(
                100, round(answered_today / self.daily_quota * 100, 1)
            ),
            "quota_met_today": progress.last_valid_streak_date == today,
            "achievements_unlocked": len(progress.achievements),
            "achievements_total": len(self.catalog),
        }

    # ===== Mutations =====

    def record_practice(self, is_correct: bool, question_id: Optional[str] = None) -> PracticeResult:
        """
        Apply one answered question to the user's progress.

        Correct answers earn XP_PER_CORRECT and mark the question as done;
        wrong answers earn XP_PER_ATTEMPT and leave it open for retry.
        Reaching the daily quota on the day after the last qualifying day
        extends the day streak; after a gap it restarts at 1.

        Achievement rewards are not paid here, see collect_achievement_xp().
        """
        self.initialize()
        progress = self._progress
        today = self.clock()

        if is_correct:
            progress.correct_answers += 1
            if question_id is not None:
                self._mark_answered(str(question_id))

        progress.questions_answered += 1
        progress.answer_streak = progress.answer_streak + 1 if is_correct else 0

        if progress.last_question_date != today:
            progress.questions_answered_today = 0
            self._expire_broken_streak(today)
            progress.last_question_date = today

        progress.questions_answered_today += 1

        xp_gained = self.xp_per_correct if is_correct else self.xp_per_attempt
        streak_extended, streak_reset = self._evaluate_day_streak(today)

        progress.total_xp += xp_gained
        new_achievements = self._check_achievements(today)

        self._persist()

        return PracticeResult(
            xp_gained=xp_gained,
            new_achievements=new_achievements,
            streak_extended=streak_extended,
            new_day_streak=progress.day_streak,
            streak_reset=streak_reset,
        )

    def add_bonus_xp(self, amount: int) -> BonusResult:
        """
        Grant flat XP outside the practice flow (streak celebrations etc.).

        Raises:
            ValueError: If amount is negative or not an integer
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"Bonus XP must be a non-negative integer, got {amount!r}")

        self.initialize()
        self._progress.total_xp += amount
        new_achievements = self._check_achievements(self.clock())
        self._persist()

        logger.info(f"Bonus XP awarded: +{amount}")
        return BonusResult(xp_gained=amount, new_achievements=new_achievements)

    def collect_achievement_xp(self, achievement_id: str) -> BonusResult:
        """
        Pay out an unlocked achievement's XP reward, at most once.

        Unknown, still locked or already collected achievements pay 0.
        The payout may itself unlock further achievements.
        """
        self.initialize()
        progress = self._progress

        definition = get_definition(achievement_id, self.catalog)
        if definition is None:
            logger.warning(f"Unknown achievement: {achievement_id}")
            return BonusResult(xp_gained=0)

        if achievement_id not in progress.achievements:
            logger.debug(f"Achievement {achievement_id} is still locked")
            return BonusResult(xp_gained=0)

        if achievement_id in progress.collected_achievements:
            return BonusResult(xp_gained=0)

        progress.collected_achievements.append(achievement_id)
        progress.total_xp += definition.xp_reward
        new_achievements = self._check_achievements(self.clock())
        self._persist()

        logger.info(f"Achievement reward collected: {definition.name} (+{definition.xp_reward} XP)")
        return BonusResult(xp_gained=definition.xp_reward, new_achievements=new_achievements)

    # ===== Internals =====

    def _mark_answered(self, question_id: str) -> None:
        if question_id in self._answered:
            return

        if self.question_source is not None and question_id not in self.question_source:
            logger.warning(f"Ignoring unknown question id: {question_id}")
            return

        self._answered.add(question_id)
        self._progress.answered_question_ids.append(question_id)

        # Oldest ids drop off first
        overflow = len(self._progress.answered_question_ids) - MAX_ANSWERED_QUESTIONS
        if overflow > 0:
            dropped = self._progress.answered_question_ids[:overflow]
            del self._progress.answered_question_ids[:overflow]
            self._answered.difference_update(dropped)

    def _evaluate_day_streak(self, today: date) -> Tuple[bool, bool]:
        """
        Count today toward the day streak once the quota is reached.

        Returns:
            (streak_extended, streak_reset)
        """
        progress = self._progress
        if progress.questions_answered_today != self.daily_quota:
            return False, False

        last_valid = progress.last_valid_streak_date
        if last_valid is not None and today <= last_valid:
            return False, False

        if last_valid is None or (today - last_valid).days == 1:
            progress.day_streak += 1
            reset = False
        else:
            progress.day_streak = 1
            reset = True

        progress.last_valid_streak_date = today
        logger.info(f"Daily quota met: {progress.day_streak}-day streak")
        return True, reset

    def _expire_broken_streak(self, today: date) -> bool:
        """Zero a day streak whose last qualifying day is before yesterday."""
        progress = self._progress
        last_valid = progress.last_valid_streak_date
        if progress.day_streak == 0 or last_valid is None:
            return False
        if (today - last_valid).days <= 1:
            return False

        logger.info(f"Day streak of {progress.day_streak} broken (last qualifying day {last_valid})")
        progress.day_streak = 0
        return True

    def _check_achievements(self, today: date) -> List[AchievementStatus]:
        unlocked = evaluate_achievements(self._progress, today, self.catalog)
        for status in unlocked:
            logger.info(
                f"Achievement unlocked: {status.definition.name} "
                f"(+{status.definition.xp_reward} XP to collect)"
            )
        return unlocked

    def _persist(self) -> None:
        self.local_store.set(self._progress)
        if self.syncer is not None:
            self.syncer.schedule(self._progress)
