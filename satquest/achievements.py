"""
Achievement catalog for SAT Quest.

A fixed, ordered list of achievement definitions. Evaluation walks the
list in order, so the order here is the order in which simultaneously
unlocked achievements are reported.
"""

from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from satquest.models import AchievementDefinition, AchievementStatus, UserProgress

ACHIEVEMENTS: List[AchievementDefinition] = [
    AchievementDefinition(
        id="first_question",
        name="Getting Started",
        description="Answer your first question",
        icon="🎯",
        xp_reward=10,
        predicate=lambda p: p.questions_answered >= 1,
    ),
    AchievementDefinition(
        id="streak_3",
        name="On a Roll",
        description="Maintain a 3-day streak",
        icon="🔥",
        xp_reward=30,
        predicate=lambda p: p.day_streak >= 3,
    ),
    AchievementDefinition(
        id="streak_7",
        name="Week Warrior",
        description="Maintain a 7-day streak",
        icon="💪",
        xp_reward=70,
        predicate=lambda p: p.day_streak >= 7,
    ),
    AchievementDefinition(
        id="streak_30",
        name="Monthly Master",
        description="Maintain a 30-day streak",
        icon="👑",
        xp_reward=300,
        predicate=lambda p: p.day_streak >= 30,
    ),
    AchievementDefinition(
        id="perfect_10",
        name="Perfect Score",
        description="Get 10 questions correct in a row",
        icon="⭐",
        xp_reward=50,
        predicate=lambda p: p.answer_streak >= 10,
    ),
    AchievementDefinition(
        id="xp_1000",
        name="Knowledge Seeker",
        description="Earn 1000 XP",
        icon="📚",
        xp_reward=100,
        predicate=lambda p: p.total_xp >= 1000,
    ),
]


def all_definitions() -> List[AchievementDefinition]:
    """Return the catalog in evaluation order."""
    return list(ACHIEVEMENTS)


def get_definition(
    achievement_id: str, catalog: Optional[Sequence[AchievementDefinition]] = None
) -> Optional[AchievementDefinition]:
    for definition in catalog if catalog is not None else ACHIEVEMENTS:
        if definition.id == achievement_id:
            return definition
    return None


def evaluate_achievements(
    progress: UserProgress,
    today: date,
    catalog: Iterable[AchievementDefinition] = ACHIEVEMENTS,
) -> List[AchievementStatus]:
    """
    Unlock every achievement whose predicate now holds.

    Mutates ``progress`` in place: newly unlocked ids are appended to
    ``achievements`` and stamped with ``today``. Already unlocked
    achievements are never re-reported or re-stamped.

    Returns:
        Newly unlocked achievements, in catalog order
    """
    newly_unlocked = []
    unlocked = set(progress.achievements)

    for definition in catalog:
        if definition.id in unlocked:
            continue
        if not definition.is_met(progress):
            continue

        progress.achievements.append(definition.id)
        progress.achievement_unlock_dates.setdefault(definition.id, today)
        unlocked.add(definition.id)
        newly_unlocked.append(
            AchievementStatus(
                definition=definition,
                unlocked=True,
                unlocked_date=progress.achievement_unlock_dates[definition.id],
                collected=definition.id in progress.collected_achievements,
            )
        )

    return newly_unlocked


def achievement_statuses(
    progress: UserProgress, catalog: Iterable[AchievementDefinition] = ACHIEVEMENTS
) -> List[AchievementStatus]:
    """Join the catalog with the user's unlock and collection state."""
    unlocked = set(progress.achievements)
    collected = set(progress.collected_achievements)
    dates: Dict[str, date] = progress.achievement_unlock_dates

    return [
        AchievementStatus(
            definition=definition,
            unlocked=definition.id in unlocked,
            unlocked_date=dates.get(definition.id),
            collected=definition.id in collected,
        )
        for definition in catalog
    ]
