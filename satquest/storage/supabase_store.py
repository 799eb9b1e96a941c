"""
Supabase Profile Store - Hosted Postgres implementation of RemoteProfileStore

Reads go through the ``public_profile_data`` view, which exposes only
public columns. Writes go to the underlying tables; row-level security
on the server decides what the current session may touch.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client, create_client

from satquest.errors import RemoteStoreError
from satquest.storage.base import RemoteProfileStore

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"
PUBLIC_PROFILES_VIEW = "public_profile_data"
PREFERENCES_TABLE = "user_preferences"
LEADERBOARDS_TABLE = "private_leaderboards"
MEMBERS_TABLE = "leaderboard_members"

PUBLIC_PROFILE_COLUMNS = "user_id, username, total_xp, day_streak"
LEADERBOARD_COLUMNS = "id, owner_id, name, description, created_at, updated_at, max_members"


class SupabaseProfileStore(RemoteProfileStore):
    """RemoteProfileStore backed by a Supabase project."""

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        client: Optional[Client] = None,
    ):
        """
        Initialize the store.

        Args:
            url: Supabase project URL (defaults to SUPABASE_URL)
            key: Supabase anon/service key (defaults to SUPABASE_KEY)
            client: Pre-built client, mainly for tests
        """
        if client is not None:
            self._client = client
            return

        url = url or os.environ.get("SUPABASE_URL")
        key = key or os.environ.get("SUPABASE_KEY")
        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY not found. "
                "Set them in .env or environment variables."
            )

        self._client = create_client(url, key)

    @property
    def store_name(self) -> str:
        return "supabase"

    def _execute(self, query, action: str):
        """Run a PostgREST query, converting any failure into RemoteStoreError."""
        try:
            return query.execute()
        except Exception as e:
            logger.warning(f"Supabase error while {action}: {e}")
            raise RemoteStoreError(f"Supabase error while {action}: {e}", cause=e)

    # ----- Profiles -----

    def upsert_profile(self, identity: str, fields: Dict[str, Any]) -> None:
        row = dict(fields)
        row["user_id"] = identity
        row["last_seen_at"] = datetime.now(timezone.utc).isoformat()
        self._execute(
            self._client.table(PROFILES_TABLE).upsert(row, on_conflict="user_id"),
            "saving profile stats",
        )

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
        query = self._client.table(PUBLIC_PROFILES_VIEW).select(PUBLIC_PROFILE_COLUMNS)

        excluded = list(exclude_user_ids)
        if excluded:
            query = query.not_.in_("user_id", excluded)
        if user_ids is not None:
            query = query.in_("user_id", list(user_ids))
        if username is not None:
            query = query.eq("username", username)
        if require_username:
            query = query.not_.is_("username", "null")
        if order_by:
            query = query.order(order_by, desc=True)
            if tie_break_column:
                query = query.order(tie_break_column)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)
        elif offset:
            query = query.offset(offset)

        response = self._execute(query, "fetching profiles")
        return list(response.data or [])

    # ----- Preferences -----

    def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self._client.table(PREFERENCES_TABLE).select("*").eq("user_id", user_id).limit(1),
            "fetching user preferences",
        )
        return response.data[0] if response.data else None

    def upsert_preferences(self, user_id: str, fields: Dict[str, Any]) -> None:
        row = dict(fields)
        row["user_id"] = user_id
        row["updated_at"] = datetime.now(timezone.utc).isoformat()
        self._execute(
            self._client.table(PREFERENCES_TABLE).upsert(row, on_conflict="user_id"),
            "updating user preferences",
        )

    def list_hidden_user_ids(self) -> List[str]:
        response = self._execute(
            self._client.table(PREFERENCES_TABLE)
            .select("user_id")
            .eq("hide_from_global_leaderboard", True),
            "fetching hidden users",
        )
        return [row["user_id"] for row in response.data or []]

    # ----- Private leaderboards -----

    def get_leaderboard(self, leaderboard_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self._client.table(LEADERBOARDS_TABLE)
            .select(LEADERBOARD_COLUMNS)
            .eq("id", leaderboard_id)
            .limit(1),
            "fetching leaderboard",
        )
        return response.data[0] if response.data else None

    def insert_leaderboard(
        self, owner_id: str, name: str, description: Optional[str]
    ) -> Dict[str, Any]:
        response = self._execute(
            self._client.table(LEADERBOARDS_TABLE).insert(
                {"owner_id": owner_id, "name": name, "description": description}
            ),
            "creating leaderboard",
        )
        if not response.data:
            raise RemoteStoreError("Failed to create leaderboard")
        return response.data[0]

    def update_leaderboard(self, leaderboard_id: str, fields: Dict[str, Any]) -> None:
        self._execute(
            self._client.table(LEADERBOARDS_TABLE).update(fields).eq("id", leaderboard_id),
            "updating leaderboard",
        )

    def delete_leaderboard(self, leaderboard_id: str) -> None:
        # Memberships go with it through ON DELETE CASCADE
        self._execute(
            self._client.table(LEADERBOARDS_TABLE).delete().eq("id", leaderboard_id),
            "deleting leaderboard",
        )

    def list_leaderboards_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        response = self._execute(
            self._client.table(MEMBERS_TABLE)
            .select(f"leaderboard_id, {LEADERBOARDS_TABLE} ({LEADERBOARD_COLUMNS})")
            .eq("user_id", user_id),
            "fetching user leaderboards",
        )
        return [row[LEADERBOARDS_TABLE] for row in response.data or [] if row.get(LEADERBOARDS_TABLE)]

    # ----- Memberships -----

    def list_members(self, leaderboard_id: str) -> List[Dict[str, Any]]:
        response = self._execute(
            self._client.table(MEMBERS_TABLE)
            .select("user_id, joined_at")
            .eq("leaderboard_id", leaderboard_id),
            "fetching leaderboard members",
        )
        return list(response.data or [])

    def is_member(self, leaderboard_id: str, user_id: str) -> bool:
        response = self._execute(
            self._client.table(MEMBERS_TABLE)
            .select("user_id")
            .eq("leaderboard_id", leaderboard_id)
            .eq("user_id", user_id)
            .limit(1),
            "checking membership",
        )
        return bool(response.data)

    def count_members(self, leaderboard_id: str) -> int:
        response = self._execute(
            self._client.table(MEMBERS_TABLE)
            .select("user_id", count="exact")
            .eq("leaderboard_id", leaderboard_id),
            "counting members",
        )
        if response.count is not None:
            return response.count
        return len(response.data or [])

    def insert_member(self, leaderboard_id: str, user_id: str) -> None:
        self._execute(
            self._client.table(MEMBERS_TABLE).insert(
                {"leaderboard_id": leaderboard_id, "user_id": user_id}
            ),
            "adding member",
        )

    def delete_member(self, leaderboard_id: str, user_id: str) -> None:
        self._execute(
            self._client.table(MEMBERS_TABLE)
            .delete()
            .eq("leaderboard_id", leaderboard_id)
            .eq("user_id", user_id),
            "removing member",
        )
