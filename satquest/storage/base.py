"""
Storage ports - Abstract interfaces for local and remote persistence

The gamification engine depends only on these two interfaces, so its
logic can run against in-memory fakes in tests and against SQLite and
Supabase in production.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from satquest.errors import StorageReadError, StorageWriteError
from satquest.models import UserProgress

logger = logging.getLogger(__name__)


class LocalProgressStore(ABC):
    """
    Durable on-device storage of a single UserProgress snapshot.

    Subclasses implement ``_read``/``_write``/``_delete`` and may raise
    StorageReadError/StorageWriteError. The public ``get``/``set``/``clear``
    methods never raise: failures are logged and reported as ``None`` or
    ``False``.
    """

    @property
    @abstractmethod
    def store_name(self) -> str:
        """Short name used in log messages (e.g. 'sqlite', 'memory')."""
        pass

    @abstractmethod
    def _read(self) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def _write(self, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def _delete(self) -> None:
        pass

    def get(self) -> Optional[UserProgress]:
        """Load the stored snapshot, or None if absent or unreadable."""
        try:
            data = self._read()
            if data is None:
                return None
            return UserProgress.from_dict(data)
        except StorageReadError as e:
            logger.error(f"Error loading user progress from {self.store_name}: {e}")
            return None
        except (TypeError, ValueError) as e:
            logger.error(f"Corrupted user progress in {self.store_name}: {e}")
            return None

    def set(self, progress: UserProgress) -> bool:
        """Persist the snapshot. Returns False if the write failed."""
        try:
            self._write(progress.to_dict())
            return True
        except StorageWriteError as e:
            logger.error(f"Error saving user progress to {self.store_name}: {e}")
            return False

    def clear(self) -> bool:
        """Delete the stored snapshot. Returns False if the delete failed."""
        try:
            self._delete()
            return True
        except StorageWriteError as e:
            logger.error(f"Error clearing user progress in {self.store_name}: {e}")
            return False


class RemoteProfileStore(ABC):
    """
    Hosted profile, leaderboard and preference tables.

    Every method either returns plain row dictionaries or raises
    RemoteStoreError. Policy (visibility, ranking, permissions) lives in
    the callers, not here.

    Profile rows carry at least ``user_id``, ``username``, ``total_xp``
    and ``day_streak``. Leaderboard rows carry ``id``, ``owner_id``,
    ``name``, ``description``, ``created_at``, ``updated_at`` and
    ``max_members``.
    """

    @property
    @abstractmethod
    def store_name(self) -> str:
        pass

    # ----- Profiles -----

    @abstractmethod
    def upsert_profile(self, identity: str, fields: Dict[str, Any]) -> None:
        """Insert or update the profile keyed by ``identity``."""
        pass

    @abstractmethod
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
        """
        Fetch public profile rows.

        Args:
            order_by: Column to sort descending by (``total_xp``/``day_streak``)
            tie_break_column: Secondary ascending sort column for equal
                ``order_by`` values, so pages do not overlap between requests
            limit: Maximum rows to return (None for all)
            offset: Rows to skip after sorting
            exclude_user_ids: Users to leave out
            user_ids: Restrict to these users
            username: Restrict to an exact username
            require_username: Leave out profiles without a username
        """
        pass

    # ----- Preferences -----

    @abstractmethod
    def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def upsert_preferences(self, user_id: str, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def list_hidden_user_ids(self) -> List[str]:
        """Users who opted out of the global leaderboard."""
        pass

    # ----- Private leaderboards -----

    @abstractmethod
    def get_leaderboard(self, leaderboard_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def insert_leaderboard(
        self, owner_id: str, name: str, description: Optional[str]
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    def update_leaderboard(self, leaderboard_id: str, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def delete_leaderboard(self, leaderboard_id: str) -> None:
        """Delete a leaderboard and, by cascade, all of its memberships."""
        pass

    @abstractmethod
    def list_leaderboards_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        pass

    # ----- Memberships -----

    @abstractmethod
    def list_members(self, leaderboard_id: str) -> List[Dict[str, Any]]:
        """Membership rows (``user_id``, ``joined_at``) of a leaderboard."""
        pass

    @abstractmethod
    def is_member(self, leaderboard_id: str, user_id: str) -> bool:
        pass

    @abstractmethod
    def count_members(self, leaderboard_id: str) -> int:
        pass

    @abstractmethod
    def insert_member(self, leaderboard_id: str, user_id: str) -> None:
        pass

    @abstractmethod
    def delete_member(self, leaderboard_id: str, user_id: str) -> None:
        pass
