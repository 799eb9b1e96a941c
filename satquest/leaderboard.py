"""
Leaderboard ranking and private leaderboard management.

This module decides who appears on a leaderboard, in what order, and who
may change a private leaderboard. All row I/O goes through the remote
profile store.

Ordering is by the chosen metric, descending. Ties are broken either by
a fresh random shuffle per request (``tie_break="random"``) or by user id
(``tie_break="stable"``).

Read operations log remote failures and return empty results. Management
operations return an OperationResult whose error kind tells the caller
why a request was rejected.
"""

import functools
import random
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from satquest.errors import (
    AuthorizationError,
    CapacityError,
    NotFoundError,
    RemoteStoreError,
    SatQuestError,
    ValidationError,
)
from satquest.logging_config import get_logger
from satquest.models import (
    LeaderboardEntry,
    LeaderboardMember,
    LeaderboardMetric,
    OperationResult,
    PrivateLeaderboard,
    RankWindow,
    UserPreferences,
)
from satquest.storage.base import RemoteProfileStore

logger = get_logger(__name__)

MAX_MEMBERS = 50
MAX_NAME_LENGTH = 100
RANK_WINDOW_RADIUS = 2  # entries shown on each side of the user
RANK_SCAN_LIMIT = 10000

E = TypeVar("E", bound=LeaderboardEntry)


def rank_entries(
    entries: Iterable[E],
    metric: LeaderboardMetric,
    tie_break: str = "random",
    rng: Optional[random.Random] = None,
) -> List[E]:
    """
    Order entries by metric, descending, with the configured tie-break.

    The metric sort is stable, so whatever order the tie-break step
    produces survives among equal values.
    """
    ordered = list(entries)
    if tie_break == "random":
        (rng or random.Random()).shuffle(ordered)
    else:
        ordered.sort(key=lambda e: e.user_id)
    ordered.sort(key=lambda e: e.metric_value(metric), reverse=True)
    return ordered


def rank_window(entries: List[E], user_id: str, radius: int = RANK_WINDOW_RADIUS) -> RankWindow:
    """The user's 1-based rank with ``radius`` entries on each side."""
    for index, entry in enumerate(entries):
        if entry.user_id == user_id:
            start = max(0, index - radius)
            end = min(len(entries), index + radius + 1)
            return RankWindow(rank=index + 1, entries=entries[start:end])
    return RankWindow()


def returns_result(func: Callable[..., OperationResult]) -> Callable[..., OperationResult]:
    """Turn SatQuestError raised by a management operation into a failed result."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> OperationResult:
        try:
            return func(*args, **kwargs)
        except SatQuestError as e:
            logger.info(f"{func.__name__} rejected ({e.kind.value}): {e.message}")
            return OperationResult.fail(e)

    return wrapper


class LeaderboardService:
    """Global and private leaderboard policy over a RemoteProfileStore."""

    def __init__(
        self,
        store: RemoteProfileStore,
        tie_break: str = "random",
        max_members: int = MAX_MEMBERS,
        rng_factory: Callable[[], random.Random] = random.Random,
    ):
        """
        Args:
            store: Remote profile store
            tie_break: 'random' (per request) or 'stable' (by user id)
            max_members: Member cap for private leaderboards (at most 50)
            rng_factory: Builds the per-request random generator
        """
        if tie_break not in ("random", "stable"):
            raise ValueError(f"Unknown tie_break mode: {tie_break}")
        self.store = store
        self.tie_break = tie_break
        self.max_members = min(max_members, MAX_MEMBERS)
        self.rng_factory = rng_factory

    def _rank(self, entries: Iterable[E], metric: LeaderboardMetric) -> List[E]:
        return rank_entries(entries, metric, self.tie_break, self.rng_factory())

    # ===== Global leaderboard =====

    def get_global_leaderboard(
        self, metric=LeaderboardMetric.XP, limit: int = 100, offset: int = 0
    ) -> List[LeaderboardEntry]:
        """
        One page of the global leaderboard.

        Users who hide from the global leaderboard or have no username are
        left out. Ranks continue from ``offset``.
        """
        metric = LeaderboardMetric.parse(metric)
        if limit <= 0 or offset < 0:
            return []

        try:
            hidden = set(self.store.list_hidden_user_ids())
            rows = self.store.query_profiles(
                order_by=metric.column,
                tie_break_column="user_id" if self.tie_break == "stable" else None,
                limit=limit,
                offset=offset,
                exclude_user_ids=hidden,
                require_username=True,
            )
        except RemoteStoreError as e:
            logger.error(f"Error fetching global {metric.value} leaderboard: {e}")
            return []

        entries = [
            LeaderboardEntry(
                user_id=str(row["user_id"]),
                username=row["username"],
                total_xp=row.get("total_xp") or 0,
                day_streak=row.get("day_streak") or 0,
            )
            for row in rows
            if row.get("username") and str(row["user_id"]) not in hidden
        ]

        ranked = self._rank(entries, metric)
        for index, entry in enumerate(ranked):
            entry.rank = offset + index + 1
        return ranked

    def get_user_global_rank(self, user_id: str, metric=LeaderboardMetric.XP) -> RankWindow:
        """
        The user's global rank and the entries around it.

        Hidden users, users not on the leaderboard, and users whose
        preferences cannot be read get ``RankWindow(rank=None)``.
        """
        metric = LeaderboardMetric.parse(metric)
        preferences = self.get_user_preferences(user_id)
        if preferences is None or preferences.hide_from_global_leaderboard:
            return RankWindow()

        entries = self.get_global_leaderboard(metric, limit=RANK_SCAN_LIMIT, offset=0)
        return rank_window(entries, user_id)

    # ===== Private leaderboards: reads =====

    def get_private_leaderboard_members(
        self, leaderboard_id: str, metric=LeaderboardMetric.XP
    ) -> List[LeaderboardMember]:
        """
        Ranked members of a private leaderboard.

        Membership is the visibility boundary, so no preference filtering.
        """
        metric = LeaderboardMetric.parse(metric)
        try:
            members = self.store.list_members(leaderboard_id)
            if not members:
                return []
            profiles = self.store.query_profiles(user_ids=[m["user_id"] for m in members])
        except RemoteStoreError as e:
            logger.error(f"Error fetching leaderboard members: {e}")
            return []

        profile_map = {str(p["user_id"]): p for p in profiles}
        entries = []
        for member in members:
            profile = profile_map.get(str(member["user_id"]))
            if profile is None:
                continue
            entries.append(
                LeaderboardMember(
                    user_id=str(member["user_id"]),
                    username=profile.get("username") or "",
                    total_xp=profile.get("total_xp") or 0,
                    day_streak=profile.get("day_streak") or 0,
                    joined_at=member.get("joined_at"),
                )
            )

        ranked = self._rank(entries, metric)
        for index, entry in enumerate(ranked):
            entry.rank = index + 1
        return ranked

    def get_user_rank_in_private_leaderboard(
        self, leaderboard_id: str, user_id: str, metric=LeaderboardMetric.XP
    ) -> RankWindow:
        members = self.get_private_leaderboard_members(leaderboard_id, metric)
        return rank_window(members, user_id)

    def get_private_leaderboards_for_user(self, user_id: str) -> List[PrivateLeaderboard]:
        """Leaderboards the user belongs to, most recently updated first."""
        try:
            rows = self.store.list_leaderboards_for_user(user_id)
            leaderboards = [
                PrivateLeaderboard.from_row(row, member_count=self.store.count_members(row["id"]))
                for row in rows
            ]
        except RemoteStoreError as e:
            logger.error(f"Error fetching user leaderboards: {e}")
            return []

        leaderboards.sort(key=lambda lb: lb.updated_at or "", reverse=True)
        return leaderboards

    # ===== Private leaderboards: management =====

    @returns_result
    def create_private_leaderboard(
        self, name: str, description: Optional[str], owner_id: str
    ) -> OperationResult:
        """Create a leaderboard with the owner as its first member."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Leaderboard name is required")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError("Leaderboard name is too long")
        description = (description or "").strip() or None

        row = self.store.insert_leaderboard(owner_id, name, description)

        try:
            self.store.insert_member(row["id"], owner_id)
        except RemoteStoreError as e:
            logger.error(f"Failed to add owner as member, rolling back leaderboard: {e}")
            self.store.delete_leaderboard(row["id"])
            raise RemoteStoreError("Failed to add owner as member", cause=e)

        logger.info(f"Created private leaderboard '{name}' for {owner_id}")
        return OperationResult.ok(PrivateLeaderboard.from_row(row, member_count=1))

    @returns_result
    def add_member_to_leaderboard(
        self, leaderboard_id: str, username: str, requesting_user_id: str
    ) -> OperationResult:
        """
        Invite a user by username.

        Checks, in order: leaderboard exists, requester is a member, the
        username belongs to a registered user, the user accepts invites,
        the user is not already a member, the leaderboard has room. The
        capacity check is best effort under concurrent inviters.
        """
        leaderboard = self.store.get_leaderboard(leaderboard_id)
        if leaderboard is None:
            raise NotFoundError("Leaderboard not found")

        if not self.store.is_member(leaderboard_id, requesting_user_id):
            raise AuthorizationError("You must be a member to add others")

        username = (username or "").strip()
        profiles = self.store.query_profiles(username=username, limit=1) if username else []
        if not profiles:
            raise ValidationError("User not found")
        profile = profiles[0]
        if not profile.get("username"):
            raise ValidationError("Cannot add anonymous users")
        target_id = str(profile["user_id"])

        if self._load_preferences(target_id).block_leaderboard_invites:
            raise ValidationError("This user has blocked leaderboard invites")

        if self.store.is_member(leaderboard_id, target_id):
            raise ValidationError("User is already a member")

        capacity = min(int(leaderboard.get("max_members") or self.max_members), self.max_members)
        if self.store.count_members(leaderboard_id) >= capacity:
            raise CapacityError(f"Leaderboard is full (max {capacity} members)")

        self.store.insert_member(leaderboard_id, target_id)
        logger.info(f"Added {username} to leaderboard {leaderboard_id}")
        return OperationResult.ok({"user_id": target_id, "username": profile["username"]})

    @returns_result
    def remove_member_from_leaderboard(
        self, leaderboard_id: str, user_id: str, removed_by_user_id: str
    ) -> OperationResult:
        """Owner-only removal of a member. The owner cannot be removed."""
        leaderboard = self._require_owner(
            leaderboard_id, removed_by_user_id, "Only the owner can remove members"
        )

        if user_id == leaderboard["owner_id"]:
            raise ValidationError("Cannot remove owner. Transfer ownership first.")

        if not self.store.is_member(leaderboard_id, user_id):
            raise ValidationError("User is not a member")

        self.store.delete_member(leaderboard_id, user_id)
        logger.info(f"Removed {user_id} from leaderboard {leaderboard_id}")
        return OperationResult.ok()

    @returns_result
    def transfer_ownership(
        self, leaderboard_id: str, new_owner_id: str, current_owner_id: str
    ) -> OperationResult:
        """Hand ownership to another existing member."""
        self._require_owner(leaderboard_id, current_owner_id, "You are not the owner")

        if new_owner_id == current_owner_id:
            raise ValidationError("You already own this leaderboard")

        if not self.store.is_member(leaderboard_id, new_owner_id):
            raise ValidationError("New owner must be an existing member")

        self.store.update_leaderboard(leaderboard_id, {"owner_id": new_owner_id})
        logger.info(f"Transferred leaderboard {leaderboard_id} to {new_owner_id}")
        return OperationResult.ok()

    @returns_result
    def delete_private_leaderboard(self, leaderboard_id: str, owner_id: str) -> OperationResult:
        """Delete a leaderboard and all of its memberships (owner only)."""
        self._require_owner(leaderboard_id, owner_id, "Only the owner can delete the leaderboard")
        self.store.delete_leaderboard(leaderboard_id)
        logger.info(f"Deleted leaderboard {leaderboard_id}")
        return OperationResult.ok()

    def _require_owner(self, leaderboard_id: str, user_id: str, message: str) -> Dict:
        """
        Load the leaderboard and check ``user_id`` owns it.

        Fails closed: if the leaderboard cannot be read, the caller is
        treated as unauthorized.
        """
        try:
            leaderboard = self.store.get_leaderboard(leaderboard_id)
        except RemoteStoreError as e:
            logger.warning(f"Could not verify ownership of {leaderboard_id}: {e}")
            raise AuthorizationError("Could not verify leaderboard ownership", cause=e)

        if leaderboard is None:
            raise NotFoundError("Leaderboard not found")
        if str(leaderboard.get("owner_id")) != str(user_id):
            raise AuthorizationError(message)
        return leaderboard

    # ===== Preferences =====

    def _load_preferences(self, user_id: str) -> UserPreferences:
        row = self.store.get_preferences(user_id)
        if not row:
            return UserPreferences(user_id=user_id)
        return UserPreferences(
            user_id=user_id,
            block_leaderboard_invites=bool(row.get("block_leaderboard_invites")),
            hide_from_global_leaderboard=bool(row.get("hide_from_global_leaderboard")),
            updated_at=row.get("updated_at"),
        )

    def get_user_preferences(self, user_id: str) -> Optional[UserPreferences]:
        """Preferences with defaults for users who never set any; None on error."""
        try:
            return self._load_preferences(user_id)
        except RemoteStoreError as e:
            logger.error(f"Error fetching user preferences: {e}")
            return None

    @returns_result
    def update_user_preferences(
        self,
        user_id: str,
        block_leaderboard_invites: Optional[bool] = None,
        hide_from_global_leaderboard: Optional[bool] = None,
    ) -> OperationResult:
        fields = {}
        if block_leaderboard_invites is not None:
            fields["block_leaderboard_invites"] = bool(block_leaderboard_invites)
        if hide_from_global_leaderboard is not None:
            fields["hide_from_global_leaderboard"] = bool(hide_from_global_leaderboard)
        if not fields:
            raise ValidationError("No preferences to update")

        self.store.upsert_preferences(user_id, fields)
        return OperationResult.ok(self._load_preferences(user_id))
