"""
Data model for SAT Quest.

UserProgress is the single per-device progress record owned by the
gamification engine. The leaderboard types are derived, ephemeral views
over rows fetched from the remote profile store.
"""

import copy
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from satquest.errors import ErrorKind, SatQuestError

# Cap on stored answered-question ids; oldest entries are dropped first
MAX_ANSWERED_QUESTIONS = 10000


def parse_date(value: Any) -> Optional[date]:
    """Parse a YYYY-MM-DD string (or a date/datetime) into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _dedupe(values) -> List[str]:
    seen = set()
    result = []
    for value in values or []:
        key = str(value)
        if key not in seen:
            seen.add(key)
            result.append(key)
    return result


@dataclass
class UserProgress:
    """Cumulative practice progress for one user/device."""

    total_xp: int = 0
    day_streak: int = 0
    questions_answered: int = 0
    correct_answers: int = 0
    answer_streak: int = 0
    last_question_date: Optional[date] = None
    questions_answered_today: int = 0
    last_valid_streak_date: Optional[date] = None
    achievements: List[str] = field(default_factory=list)
    achievement_unlock_dates: Dict[str, date] = field(default_factory=dict)
    collected_achievements: List[str] = field(default_factory=list)
    answered_question_ids: List[str] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        """Percentage of answers that were correct, rounded to one decimal."""
        if self.questions_answered == 0:
            return 0.0
        return round(self.correct_answers / self.questions_answered * 100, 1)

    def copy(self) -> "UserProgress":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the remote ``profiles`` column names."""
        return {
            "total_xp": self.total_xp,
            "day_streak": self.day_streak,
            "questions_answered": self.questions_answered,
            "correct_answers": self.correct_answers,
            "answer_streak": self.answer_streak,
            "last_question_date": format_date(self.last_question_date),
            "questions_answered_today": self.questions_answered_today,
            "last_valid_streak_date": format_date(self.last_valid_streak_date),
            "achievements": list(self.achievements),
            "achievement_unlock_dates": {
                ach_id: format_date(unlocked)
                for ach_id, unlocked in self.achievement_unlock_dates.items()
            },
            "collected_achievements": list(self.collected_achievements),
            "answered_question_ids": list(self.answered_question_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProgress":
        """
        Build progress from a stored snapshot.

        Missing keys fall back to defaults so snapshots written by older
        versions still load. Counters are clamped to keep
        ``correct_answers <= questions_answered``.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Progress snapshot must be an object, got {type(data).__name__}")
        raw_unlock_dates = data.get("achievement_unlock_dates") or {}
        if not isinstance(raw_unlock_dates, dict):
            raise ValueError("achievement_unlock_dates must be an object")

        questions_answered = max(0, int(data.get("questions_answered") or 0))
        correct_answers = max(0, int(data.get("correct_answers") or 0))

        unlock_dates = {}
        for ach_id, unlocked in raw_unlock_dates.items():
            parsed = parse_date(unlocked)
            if parsed:
                unlock_dates[str(ach_id)] = parsed

        answered_ids = _dedupe(data.get("answered_question_ids"))
        if len(answered_ids) > MAX_ANSWERED_QUESTIONS:
            answered_ids = answered_ids[-MAX_ANSWERED_QUESTIONS:]

        return cls(
            total_xp=max(0, int(data.get("total_xp") or 0)),
            day_streak=max(0, int(data.get("day_streak") or 0)),
            questions_answered=questions_answered,
            correct_answers=min(correct_answers, questions_answered),
            answer_streak=max(0, int(data.get("answer_streak") or 0)),
            last_question_date=parse_date(data.get("last_question_date")),
            questions_answered_today=max(0, int(data.get("questions_answered_today") or 0)),
            last_valid_streak_date=parse_date(data.get("last_valid_streak_date")),
            achievements=_dedupe(data.get("achievements")),
            achievement_unlock_dates=unlock_dates,
            collected_achievements=_dedupe(data.get("collected_achievements")),
            answered_question_ids=answered_ids,
        )


@dataclass(frozen=True)
class AchievementDefinition:
    """Static achievement: identity, display data, reward and unlock rule."""

    id: str
    name: str
    description: str
    icon: str
    xp_reward: int
    predicate: Callable[[UserProgress], bool] = field(compare=False, repr=False)

    def is_met(self, progress: UserProgress) -> bool:
        return bool(self.predicate(progress))


@dataclass
class AchievementStatus:
    """An achievement definition joined with one user's unlock state."""

    definition: AchievementDefinition
    unlocked: bool = False
    unlocked_date: Optional[date] = None
    collected: bool = False

    @property
    def id(self) -> str:
        return self.definition.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.definition.id,
            "name": self.definition.name,
            "description": self.definition.description,
            "icon": self.definition.icon,
            "xp_reward": self.definition.xp_reward,
            "unlocked": self.unlocked,
            "unlocked_date": format_date(self.unlocked_date),
            "collected": self.collected,
        }


@dataclass
class PracticeResult:
    """Outcome of a single recorded answer."""

    xp_gained: int
    new_achievements: List[AchievementStatus] = field(default_factory=list)
    streak_extended: bool = False
    new_day_streak: int = 0
    streak_reset: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "xp_gained": self.xp_gained,
            "new_achievements": [a.to_dict() for a in self.new_achievements],
            "streak_extended": self.streak_extended,
            "new_day_streak": self.new_day_streak,
            "streak_reset": self.streak_reset,
        }


@dataclass
class BonusResult:
    """Outcome of a bonus or achievement-reward XP grant."""

    xp_gained: int
    new_achievements: List[AchievementStatus] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "xp_gained": self.xp_gained,
            "new_achievements": [a.to_dict() for a in self.new_achievements],
        }


class LeaderboardMetric(str, Enum):
    """Sort key for leaderboards."""

    XP = "xp"
    STREAK = "streak"

    @property
    def column(self) -> str:
        return "total_xp" if self is LeaderboardMetric.XP else "day_streak"

    @classmethod
    def parse(cls, value: Any) -> "LeaderboardMetric":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown leaderboard metric: '{value}'. Use 'xp' or 'streak'.")


@dataclass
class LeaderboardEntry:
    user_id: str
    username: str
    total_xp: int
    day_streak: int
    rank: int = 0

    def metric_value(self, metric: LeaderboardMetric) -> int:
        return self.total_xp if metric is LeaderboardMetric.XP else self.day_streak

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "total_xp": self.total_xp,
            "day_streak": self.day_streak,
            "rank": self.rank,
        }


@dataclass
class LeaderboardMember(LeaderboardEntry):
    joined_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["joined_at"] = self.joined_at
        return data


@dataclass
class RankWindow:
    """A user's rank plus the entries around it; rank is None when unranked."""

    rank: Optional[int] = None
    entries: List[LeaderboardEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"rank": self.rank, "entries": [e.to_dict() for e in self.entries]}


@dataclass
class PrivateLeaderboard:
    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    max_members: int = 50
    member_count: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any], member_count: int = 0) -> "PrivateLeaderboard":
        return cls(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            name=row.get("name", ""),
            description=row.get("description"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            max_members=int(row.get("max_members") or 50),
            member_count=member_count,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "max_members": self.max_members,
            "member_count": self.member_count,
        }


@dataclass
class UserPreferences:
    user_id: str
    block_leaderboard_invites: bool = False
    hide_from_global_leaderboard: bool = False
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "block_leaderboard_invites": self.block_leaderboard_invites,
            "hide_from_global_leaderboard": self.hide_from_global_leaderboard,
            "updated_at": self.updated_at,
        }


@dataclass
class OperationResult:
    """Success/error result returned by leaderboard management operations."""

    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    data: Any = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: SatQuestError) -> "OperationResult":
        return cls(success=False, error=exc.message, error_kind=exc.kind)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "success": self.success,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }
        if self.data is not None:
            payload["data"] = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        return payload
