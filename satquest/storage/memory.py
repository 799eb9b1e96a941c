"""
In-memory remote profile store

Mirrors the row semantics of the hosted tables (unique membership,
cascade delete, default preferences absent) without any network. Used
for offline development and as the test double for the remote port.
"""

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from satquest.errors import RemoteStoreError
from satquest.storage.base import RemoteProfileStore

DEFAULT_MAX_MEMBERS = 50


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryProfileStore(RemoteProfileStore):
    """Thread-safe dictionary-backed implementation of RemoteProfileStore."""

    def __init__(self, max_members: int = DEFAULT_MAX_MEMBERS):
        self.max_members = max_members
        self._lock = threading.Lock()
        self._profiles: Dict[str, Dict[str, Any]] = {}
        self._preferences: Dict[str, Dict[str, Any]] = {}
        self._leaderboards: Dict[str, Dict[str, Any]] = {}
        self._members: Dict[str, Dict[str, str]] = {}
        self.upsert_calls: List[Dict[str, Any]] = []

    @property
    def store_name(self) -> str:
        return "memory"

    # ----- Seeding helpers -----

    def add_profile(
        self,
        user_id: str,
        username: Optional[str],
        total_xp: int = 0,
        day_streak: int = 0,
    ) -> Dict[str, Any]:
        with self._lock:
            row = self._profiles.setdefault(user_id, {"user_id": user_id})
            row.update({"username": username, "total_xp": total_xp, "day_streak": day_streak})
            return copy.deepcopy(row)

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._profiles.get(user_id)
            return copy.deepcopy(row) if row else None

    # ----- Profiles -----

    def upsert_profile(self, identity: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            self.upsert_calls.append({"identity": identity, "fields": copy.deepcopy(fields)})
            row = self._profiles.setdefault(identity, {"user_id": identity, "username": None})
            row.update(copy.deepcopy(fields))
            row["user_id"] = identity

    def query_profiles(
        self,
        order_by: Optional[str] = None,
        tie_break_column: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        exclude_user_ids: Iterable[str] = (),
        user_ids: Optional[Iterable[str]] = None,
        username: Optional[str] = None,
        require_username: bool = False,
    ) -> List[Dict[str, Any]]:
        excluded = set(exclude_user_ids)
        wanted = set(user_ids) if user_ids is not None else None

        with self._lock:
            rows = []
            for row in self._profiles.values():
                if row["user_id"] in excluded:
                    continue
                if wanted is not None and row["user_id"] not in wanted:
                    continue
                if username is not None and row.get("username") != username:
                    continue
                if require_username and not row.get("username"):
                    continue
                rows.append(
                    {
                        "user_id": row["user_id"],
                        "username": row.get("username"),
                        "total_xp": row.get("total_xp") or 0,
                        "day_streak": row.get("day_streak") or 0,
                    }
                )

        if order_by and tie_break_column:
            rows.sort(key=lambda r: str(r.get(tie_break_column) or ""))
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or 0, reverse=True)

        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return rows

    # ----- Preferences -----

    def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._preferences.get(user_id)
            return copy.deepcopy(row) if row else None

    def upsert_preferences(self, user_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            row = self._preferences.setdefault(
                user_id,
                {
                    "user_id": user_id,
                    "block_leaderboard_invites": False,
                    "hide_from_global_leaderboard": False,
                },
            )
            row.update(fields)
            row["updated_at"] = _now()

    def list_hidden_user_ids(self) -> List[str]:
        with self._lock:
            return [
                user_id
                for user_id, row in self._preferences.items()
                if row.get("hide_from_global_leaderboard")
            ]

    # ----- Private leaderboards -----

    def get_leaderboard(self, leaderboard_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._leaderboards.get(leaderboard_id)
            return copy.deepcopy(row) if row else None

    def insert_leaderboard(
        self, owner_id: str, name: str, description: Optional[str]
    ) -> Dict[str, Any]:
        now = _now()
        row = {
            "id": str(uuid.uuid4()),
            "owner_id": owner_id,
            "name": name,
            "description": description,
            "created_at": now,
            "updated_at": now,
            "max_members": self.max_members,
        }
        with self._lock:
            self._leaderboards[row["id"]] = row
            self._members[row["id"]] = {}
            return copy.deepcopy(row)

    def update_leaderboard(self, leaderboard_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            row = self._leaderboards.get(leaderboard_id)
            if row is None:
                raise RemoteStoreError(f"Leaderboard {leaderboard_id} does not exist")
            row.update(fields)
            row["updated_at"] = _now()

    def delete_leaderboard(self, leaderboard_id: str) -> None:
        with self._lock:
            self._leaderboards.pop(leaderboard_id, None)
            self._members.pop(leaderboard_id, None)

    def list_leaderboards_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(self._leaderboards[lb_id])
                for lb_id, members in self._members.items()
                if user_id in members and lb_id in self._leaderboards
            ]

    # ----- Memberships -----

    def list_members(self, leaderboard_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            members = self._members.get(leaderboard_id, {})
            return [
                {"user_id": user_id, "joined_at": joined_at}
                for user_id, joined_at in members.items()
            ]

    def is_member(self, leaderboard_id: str, user_id: str) -> bool:
        with self._lock:
            return user_id in self._members.get(leaderboard_id, {})

    def count_members(self, leaderboard_id: str) -> int:
        with self._lock:
            return len(self._members.get(leaderboard_id, {}))

    def insert_member(self, leaderboard_id: str, user_id: str) -> None:
        with self._lock:
            if leaderboard_id not in self._leaderboards:
                raise RemoteStoreError(f"Leaderboard {leaderboard_id} does not exist")
            members = self._members.setdefault(leaderboard_id, {})
            if user_id in members:
                raise RemoteStoreError(
                    "duplicate key value violates unique constraint (leaderboard_id, user_id)"
                )
            members[user_id] = _now()

    def delete_member(self, leaderboard_id: str, user_id: str) -> None:
        with self._lock:
            self._members.get(leaderboard_id, {}).pop(user_id, None)
