"""
Tests for leaderboard ranking and private leaderboard management.
"""

import random
from unittest.mock import Mock

import pytest

from satquest.errors import ErrorKind, RemoteStoreError
from satquest.leaderboard import LeaderboardService, rank_entries
from satquest.models import LeaderboardEntry, LeaderboardMetric, RankWindow
from satquest.storage import InMemoryProfileStore


class OwnerCheckUnavailableStore(InMemoryProfileStore):
    """Store whose leaderboard lookups fail, as during a network outage."""

    def get_leaderboard(self, leaderboard_id):
        raise RemoteStoreError("request timed out")


class MemberInsertFailsStore(InMemoryProfileStore):
    def insert_member(self, leaderboard_id, user_id):
        raise RemoteStoreError("insert rejected")


def seed_profiles(store, rows):
    for user_id, username, xp, streak in rows:
        store.add_profile(user_id, username, total_xp=xp, day_streak=streak)


@pytest.fixture
def ranked_store(remote_store):
    seed_profiles(
        remote_store,
        [
            ("u1", "alice", 500, 3),
            ("u2", "bobby", 900, 1),
            ("u3", "carol", 700, 9),
            ("u4", "daveo", 300, 4),
            ("u5", "erinn", 800, 2),
            ("u6", "frank", 100, 7),
            ("u7", "grace", 600, 0),
        ],
    )
    return remote_store


@pytest.fixture
def board(leaderboards, remote_store):
    """A private leaderboard owned by u1 with u2 as a member."""
    seed_profiles(
        remote_store,
        [("u1", "alice", 500, 3), ("u2", "bobby", 900, 1), ("u3", "carol", 700, 9)],
    )
    created = leaderboards.create_private_leaderboard("Study Group", "Fall cohort", "u1")
    leaderboard_id = created.data.id
    remote_store.insert_member(leaderboard_id, "u2")
    return leaderboard_id


# ===== Ordering =====


def test_rank_entries_stable_tie_break_uses_user_id():
    entries = [
        LeaderboardEntry("b", "bee", 100, 0),
        LeaderboardEntry("c", "cee", 200, 0),
        LeaderboardEntry("a", "ayy", 100, 0),
    ]

    ranked = rank_entries(entries, LeaderboardMetric.XP, tie_break="stable")

    assert [e.user_id for e in ranked] == ["c", "a", "b"]


def test_rank_entries_random_tie_break_only_reorders_ties():
    """Test that random tie-breaking shuffles tied users but never breaks metric order."""
    entries = [LeaderboardEntry(f"t{i}", f"tied{i}", 100, 0) for i in range(5)]
    entries.append(LeaderboardEntry("top", "top", 500, 0))
    entries.append(LeaderboardEntry("low", "low", 10, 0))

    orders = set()
    for seed in range(30):
        ranked = rank_entries(entries, LeaderboardMetric.XP, "random", random.Random(seed))
        assert ranked[0].user_id == "top"
        assert ranked[-1].user_id == "low"
        orders.add(tuple(e.user_id for e in ranked[1:-1]))

    assert len(orders) > 1


def test_unknown_tie_break_mode_rejected(remote_store):
    with pytest.raises(ValueError):
        LeaderboardService(remote_store, tie_break="alphabetical")


# ===== Global =====


def test_global_leaderboard_orders_by_xp(leaderboards, ranked_store):
    entries = leaderboards.get_global_leaderboard(LeaderboardMetric.XP)

    assert [e.username for e in entries] == [
        "bobby",
        "erinn",
        "carol",
        "grace",
        "alice",
        "daveo",
        "frank",
    ]
    assert [e.rank for e in entries] == [1, 2, 3, 4, 5, 6, 7]


def test_global_leaderboard_orders_by_streak(leaderboards, ranked_store):
    entries = leaderboards.get_global_leaderboard("streak", limit=3)

    assert [e.username for e in entries] == ["carol", "frank", "daveo"]


def test_global_leaderboard_pagination_continues_ranks(leaderboards, ranked_store):
    entries = leaderboards.get_global_leaderboard(LeaderboardMetric.XP, limit=2, offset=2)

    assert [(e.rank, e.username) for e in entries] == [(3, "carol"), (4, "grace")]


def test_stable_tie_break_pages_do_not_overlap(remote_store):
    """Test that tied users keep one user-id order across page boundaries."""
    seed_profiles(
        remote_store,
        [
            ("u3", "carol", 100, 0),
            ("u1", "alice", 100, 0),
            ("u4", "daveo", 100, 0),
            ("u2", "bobby", 100, 0),
        ],
    )
    service = LeaderboardService(remote_store, tie_break="stable")

    first = service.get_global_leaderboard(LeaderboardMetric.XP, limit=2, offset=0)
    second = service.get_global_leaderboard(LeaderboardMetric.XP, limit=2, offset=2)

    assert [e.user_id for e in first + second] == ["u1", "u2", "u3", "u4"]
    assert [e.rank for e in first + second] == [1, 2, 3, 4]


def test_global_leaderboard_excludes_hidden_and_anonymous(leaderboards, ranked_store):
    """Test that hidden users and users without a username never appear."""
    ranked_store.add_profile("anon-device", None, total_xp=5000)
    leaderboards.update_user_preferences("u2", hide_from_global_leaderboard=True)

    entries = leaderboards.get_global_leaderboard(LeaderboardMetric.XP)
    user_ids = [e.user_id for e in entries]

    assert "u2" not in user_ids
    assert "anon-device" not in user_ids
    assert entries[0].username == "erinn"
    assert entries[0].rank == 1


def test_global_leaderboard_invalid_paging(leaderboards, ranked_store):
    assert leaderboards.get_global_leaderboard(limit=0) == []
    assert leaderboards.get_global_leaderboard(offset=-1) == []


def test_global_leaderboard_unknown_metric(leaderboards):
    with pytest.raises(ValueError):
        leaderboards.get_global_leaderboard("accuracy")


def test_global_leaderboard_remote_error_returns_empty():
    store = Mock(spec=InMemoryProfileStore)
    store.list_hidden_user_ids.side_effect = RemoteStoreError("offline")
    service = LeaderboardService(store)

    assert service.get_global_leaderboard(LeaderboardMetric.XP) == []


def test_user_global_rank_window(leaderboards, ranked_store):
    window = leaderboards.get_user_global_rank("u7", LeaderboardMetric.XP)

    assert window.rank == 4
    assert [e.username for e in window.entries] == ["erinn", "carol", "grace", "alice", "daveo"]


def test_user_global_rank_window_clipped_at_top(leaderboards, ranked_store):
    window = leaderboards.get_user_global_rank("u2", LeaderboardMetric.XP)

    assert window.rank == 1
    assert [e.rank for e in window.entries] == [1, 2, 3]


def test_hidden_user_has_no_global_rank(leaderboards, ranked_store):
    leaderboards.update_user_preferences("u3", hide_from_global_leaderboard=True)

    assert leaderboards.get_user_global_rank("u3") == RankWindow()


def test_unknown_user_has_no_global_rank(leaderboards, ranked_store):
    window = leaderboards.get_user_global_rank("nobody")

    assert window.rank is None
    assert window.entries == []


# ===== Private leaderboards =====


def test_create_private_leaderboard_adds_owner(leaderboards, remote_store):
    result = leaderboards.create_private_leaderboard("  Study Group  ", "", "u1")

    assert result.success
    assert result.data.name == "Study Group"
    assert result.data.description is None
    assert result.data.member_count == 1
    assert remote_store.is_member(result.data.id, "u1")


@pytest.mark.parametrize("name", ["", "   ", None, "x" * 101])
def test_create_private_leaderboard_validates_name(leaderboards, name):
    result = leaderboards.create_private_leaderboard(name, None, "u1")

    assert not result.success
    assert result.error_kind == ErrorKind.VALIDATION


def test_create_rolls_back_when_owner_cannot_join():
    store = MemberInsertFailsStore()
    service = LeaderboardService(store, tie_break="stable")

    result = service.create_private_leaderboard("Study Group", None, "u1")

    assert not result.success
    assert result.error_kind == ErrorKind.REMOTE
    assert service.get_private_leaderboards_for_user("u1") == []
    assert store._leaderboards == {}


def test_private_members_are_ranked_without_visibility_filter(leaderboards, board):
    """Test that membership, not global visibility, decides who is listed."""
    leaderboards.update_user_preferences("u2", hide_from_global_leaderboard=True)

    members = leaderboards.get_private_leaderboard_members(board, LeaderboardMetric.XP)

    assert [(m.rank, m.username) for m in members] == [(1, "bobby"), (2, "alice")]
    assert all(m.joined_at for m in members)


def test_user_rank_in_private_leaderboard(leaderboards, board):
    window = leaderboards.get_user_rank_in_private_leaderboard(board, "u1", "xp")

    assert window.rank == 2
    assert [e.user_id for e in window.entries] == ["u2", "u1"]


def test_leaderboards_for_user_most_recent_first(leaderboards, remote_store):
    older = leaderboards.create_private_leaderboard("Older", None, "u1").data.id
    newer = leaderboards.create_private_leaderboard("Newer", None, "u1").data.id
    remote_store.insert_member(newer, "u2")
    remote_store._leaderboards[older]["updated_at"] = "2026-01-01T00:00:00+00:00"
    remote_store._leaderboards[newer]["updated_at"] = "2026-02-01T00:00:00+00:00"

    boards = leaderboards.get_private_leaderboards_for_user("u1")

    assert [b.name for b in boards] == ["Newer", "Older"]
    assert [b.member_count for b in boards] == [2, 1]
    assert leaderboards.get_private_leaderboards_for_user("u3") == []


# ===== Adding members =====


def test_add_member_success(leaderboards, board, remote_store):
    result = leaderboards.add_member_to_leaderboard(board, "carol", "u2")

    assert result.success
    assert result.data == {"user_id": "u3", "username": "carol"}
    assert remote_store.is_member(board, "u3")


def test_add_member_to_missing_leaderboard(leaderboards, board):
    result = leaderboards.add_member_to_leaderboard("missing", "carol", "u1")

    assert result.error_kind == ErrorKind.NOT_FOUND
    assert result.error == "Leaderboard not found"


def test_add_member_requires_requester_membership(leaderboards, board):
    result = leaderboards.add_member_to_leaderboard(board, "carol", "u3")

    assert result.error_kind == ErrorKind.AUTHORIZATION


def test_add_member_unknown_username(leaderboards, board):
    result = leaderboards.add_member_to_leaderboard(board, "nobody", "u1")

    assert result.error_kind == ErrorKind.VALIDATION
    assert result.error == "User not found"


def test_add_member_respects_blocked_invites(leaderboards, board, remote_store):
    leaderboards.update_user_preferences("u3", block_leaderboard_invites=True)

    result = leaderboards.add_member_to_leaderboard(board, "carol", "u1")

    assert result.error_kind == ErrorKind.VALIDATION
    assert result.error == "This user has blocked leaderboard invites"
    assert not remote_store.is_member(board, "u3")


def test_add_existing_member(leaderboards, board):
    result = leaderboards.add_member_to_leaderboard(board, "bobby", "u1")

    assert result.error_kind == ErrorKind.VALIDATION
    assert result.error == "User is already a member"


def fill_to_capacity(store, leaderboard_id):
    for i in range(store.count_members(leaderboard_id), 50):
        store.add_profile(f"filler{i}", f"filler{i:02d}")
        store.insert_member(leaderboard_id, f"filler{i}")


def test_add_member_to_full_leaderboard(leaderboards, board, remote_store):
    """Test that a leaderboard at 50 members rejects new members and stays at 50."""
    fill_to_capacity(remote_store, board)
    assert remote_store.count_members(board) == 50

    result = leaderboards.add_member_to_leaderboard(board, "carol", "u1")

    assert not result.success
    assert result.error_kind == ErrorKind.CAPACITY
    assert remote_store.count_members(board) == 50


def test_add_member_checks_in_order(leaderboards, board, remote_store):
    """Test that the first failing precondition decides the error."""
    fill_to_capacity(remote_store, board)
    leaderboards.update_user_preferences("u3", block_leaderboard_invites=True)

    blocked = leaderboards.add_member_to_leaderboard(board, "carol", "u1")
    existing = leaderboards.add_member_to_leaderboard(board, "bobby", "u1")
    outsider = leaderboards.add_member_to_leaderboard(board, "carol", "u3")

    assert blocked.error == "This user has blocked leaderboard invites"
    assert existing.error == "User is already a member"
    assert outsider.error_kind == ErrorKind.AUTHORIZATION


def test_service_cap_applies_to_leaderboard(remote_store):
    service = LeaderboardService(remote_store, tie_break="stable", max_members=2)
    seed_profiles(remote_store, [("u1", "alice", 0, 0), ("u2", "bobby", 0, 0), ("u3", "carol", 0, 0)])
    leaderboard_id = service.create_private_leaderboard("Pair", None, "u1").data.id

    assert service.add_member_to_leaderboard(leaderboard_id, "bobby", "u1").success
    result = service.add_member_to_leaderboard(leaderboard_id, "carol", "u1")

    assert result.error_kind == ErrorKind.CAPACITY
    assert result.error == "Leaderboard is full (max 2 members)"


# ===== Owner-only operations =====


def test_owner_removes_member(leaderboards, board, remote_store):
    result = leaderboards.remove_member_from_leaderboard(board, "u2", "u1")

    assert result.success
    assert not remote_store.is_member(board, "u2")


def test_non_owner_cannot_remove(leaderboards, board, remote_store):
    result = leaderboards.remove_member_from_leaderboard(board, "u1", "u2")

    assert result.error_kind == ErrorKind.AUTHORIZATION
    assert result.error == "Only the owner can remove members"
    assert remote_store.is_member(board, "u1")


def test_owner_cannot_be_removed(leaderboards, board):
    result = leaderboards.remove_member_from_leaderboard(board, "u1", "u1")

    assert result.error_kind == ErrorKind.VALIDATION
    assert result.error == "Cannot remove owner. Transfer ownership first."


def test_remove_non_member(leaderboards, board):
    result = leaderboards.remove_member_from_leaderboard(board, "u3", "u1")

    assert result.error_kind == ErrorKind.VALIDATION


def test_transfer_ownership(leaderboards, board, remote_store):
    result = leaderboards.transfer_ownership(board, "u2", "u1")

    assert result.success
    assert remote_store.get_leaderboard(board)["owner_id"] == "u2"

    # The former owner is now an ordinary member
    assert leaderboards.delete_private_leaderboard(board, "u1").error_kind == ErrorKind.AUTHORIZATION
    assert leaderboards.remove_member_from_leaderboard(board, "u1", "u2").success


def test_transfer_requires_existing_member(leaderboards, board, remote_store):
    result = leaderboards.transfer_ownership(board, "u3", "u1")

    assert result.error == "New owner must be an existing member"
    assert remote_store.get_leaderboard(board)["owner_id"] == "u1"


def test_transfer_by_non_owner(leaderboards, board):
    result = leaderboards.transfer_ownership(board, "u2", "u2")

    assert result.error_kind == ErrorKind.AUTHORIZATION
    assert result.error == "You are not the owner"


def test_delete_removes_leaderboard_and_memberships(leaderboards, board, remote_store):
    result = leaderboards.delete_private_leaderboard(board, "u1")

    assert result.success
    assert remote_store.get_leaderboard(board) is None
    assert remote_store.count_members(board) == 0
    assert leaderboards.get_private_leaderboards_for_user("u2") == []


def test_delete_missing_leaderboard(leaderboards):
    result = leaderboards.delete_private_leaderboard("missing", "u1")

    assert result.error_kind == ErrorKind.NOT_FOUND


@pytest.mark.parametrize(
    "operation",
    [
        lambda s: s.remove_member_from_leaderboard("lb1", "u2", "u1"),
        lambda s: s.transfer_ownership("lb1", "u2", "u1"),
        lambda s: s.delete_private_leaderboard("lb1", "u1"),
    ],
)
def test_owner_only_operations_fail_closed(operation):
    """Test that an ownership check that cannot complete rejects the operation."""
    store = OwnerCheckUnavailableStore()
    service = LeaderboardService(store)

    result = operation(service)

    assert not result.success
    assert result.error_kind == ErrorKind.AUTHORIZATION


# ===== Preferences =====


def test_preferences_default_to_false(leaderboards):
    preferences = leaderboards.get_user_preferences("u1")

    assert preferences.block_leaderboard_invites is False
    assert preferences.hide_from_global_leaderboard is False


def test_update_preferences_is_partial(leaderboards):
    leaderboards.update_user_preferences("u1", block_leaderboard_invites=True)
    result = leaderboards.update_user_preferences("u1", hide_from_global_leaderboard=True)

    assert result.success
    assert result.data.block_leaderboard_invites is True
    assert result.data.hide_from_global_leaderboard is True


def test_update_preferences_requires_a_field(leaderboards):
    result = leaderboards.update_user_preferences("u1")

    assert result.error_kind == ErrorKind.VALIDATION


def test_preferences_remote_error():
    store = Mock(spec=InMemoryProfileStore)
    store.get_preferences.side_effect = RemoteStoreError("offline")
    service = LeaderboardService(store)

    assert service.get_user_preferences("u1") is None
    assert service.get_user_global_rank("u1") == RankWindow()
