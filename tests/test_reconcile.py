"""Tests for replaying closed cups into player profiles."""

from __future__ import annotations

from datetime import timedelta

import pytest

from ppcup.elo import replay
from ppcup.eligibility import EligibilityFilter
from ppcup.models import TRACK_POOL, TRACK_RATING, history_entries, player_profiles, suspected_bans
from ppcup.reconcile import HistoryReconciler, IdentityResolver
from ppcup.errors import DataIntegrityAmbiguity
from ppcup.tournament import write_snapshot


def e(position, user_id, score, rating_start=3000.0, play_count=50000, nickname=None):
    return {
        "position": position,
        "user_id": user_id,
        "nickname": nickname if nickname is not None else f"user{user_id}",
        "rating_start": rating_start,
        "rating_end": rating_start,
        "play_count": play_count,
        "score": score,
    }


def profiles(store, track=TRACK_RATING):
    rows = store.select_all(player_profiles, {"track": track})
    return {r["player_key"]: {k: v for k, v in r.items() if k != "id"} for r in rows}


@pytest.fixture
def history(store, t0):
    write_snapshot(store, TRACK_RATING, [
        e(1, 1, 300, rating_start=5000, play_count=40000),
        e(2, 2, 200),
        e(3, None, 100, rating_start=4500, play_count=None, nickname="OldTimer"),
    ], t0)
    write_snapshot(store, TRACK_RATING, [
        e(1, 2, 500),
        e(2, 1, 400, rating_start=5100, play_count=41000),
        e(3, 3, 50, nickname="oldtimer"),
    ], t0 + timedelta(days=7))
    return store


@pytest.fixture
def reconciler(history, source):
    f = EligibilityFilter(source, min_rating=4000, min_play_count=30000)
    return HistoryReconciler(history, f, TRACK_RATING)


class TestReconcile:

    def test_aggregates(self, reconciler, store):
        stats = reconciler.reconcile()
        assert stats["snapshots"] == 2

        p = profiles(store)
        assert set(p) == {"id:1", "id:2", "id:3"}
        assert (p["id:1"]["participations"], p["id:1"]["wins"], p["id:1"]["best_position"]) == (2, 2, 1)
        assert p["id:1"]["total_points"] == 700
        assert (p["id:2"]["wins"], p["id:2"]["best_position"], p["id:2"]["total_points"]) == (0, 1, 700)
        # nickname-only entry joined to user 3 case-insensitively
        assert (p["id:3"]["participations"], p["id:3"]["total_points"], p["id:3"]["best_position"]) == (2, 150, 3)

    def test_ratings_match_replay(self, reconciler, store):
        reconciler.reconcile()
        expected, _ = replay([
            (1, [("id:1", 300), ("id:2", 200), ("id:3", 100)]),
            (2, [("id:2", 500), ("id:1", 400), ("id:3", 50)]),
        ])
        p = profiles(store)
        assert {k: v["rating"] for k, v in p.items()} == expected

    def test_entries_are_marked(self, reconciler, store):
        reconciler.reconcile()
        entries = store.select_all(history_entries)
        assert all(row["elo_after"] is not None for row in entries)

    def test_second_run_changes_nothing(self, reconciler, store):
        reconciler.reconcile()
        before = profiles(store)
        stats = reconciler.reconcile()
        assert stats == {"snapshots": 0, "profiles": 0}
        assert profiles(store) == before

    def test_new_snapshot_builds_on_previous(self, reconciler, store, t0):
        reconciler.reconcile()
        before = profiles(store)
        write_snapshot(store, TRACK_RATING, [e(1, 3, 900), e(2, 2, 10)], t0 + timedelta(days=14))
        stats = reconciler.reconcile()
        assert stats["snapshots"] == 1
        after = profiles(store)
        assert after["id:3"]["participations"] == 3
        assert after["id:3"]["rating"] > before["id:3"]["rating"]
        assert after["id:1"] == before["id:1"]

    def test_lost_profiles_are_refolded_from_markers(self, reconciler, store):
        reconciler.reconcile()
        before = profiles(store)
        store.delete_where(player_profiles, {"player_key": "id:2"})
        reconciler.reconcile()
        assert profiles(store) == before

    def test_partially_marked_snapshot_is_not_double_counted(self, reconciler, store):
        reconciler.reconcile()
        before = profiles(store)
        last = store.select_all(history_entries, order_by=["-snapshot_id"])[0]["snapshot_id"]
        store.update(history_entries, {"snapshot_id": last, "position": 1}, {"elo_after": None})
        stats = reconciler.reconcile()
        assert stats["snapshots"] == 1
        assert profiles(store) == before

    def test_unidentifiable_entry_is_skipped(self, store, source, t0):
        write_snapshot(store, TRACK_RATING, [
            e(1, 1, 10),
            e(2, None, 5, nickname=""),
        ], t0)
        rec = HistoryReconciler(store, EligibilityFilter(source), TRACK_RATING)
        rec.reconcile()
        assert set(profiles(store)) == {"id:1"}
        # a lone identifiable player has nobody to be compared with
        assert profiles(store)["id:1"]["rating"] == 1000

    def test_no_qualified_winner_credits_nobody(self, store, source, t0):
        write_snapshot(store, TRACK_RATING, [e(1, 1, 10, rating_start=100), e(2, 2, 5, rating_start=200)], t0)
        HistoryReconciler(store, EligibilityFilter(source), TRACK_RATING).reconcile()
        assert all(p["wins"] == 0 for p in profiles(store).values())

    def test_suspected_ban_recorded(self, store, source, t0):
        write_snapshot(store, TRACK_RATING, [e(1, 44, 10, rating_start=6000, play_count=0, nickname="ghost")], t0)
        HistoryReconciler(store, EligibilityFilter(source), TRACK_RATING).reconcile()
        bans = store.select_all(suspected_bans)
        assert [(b["user_id"], b["nickname"]) for b in bans] == [(44, "ghost")]
        assert profiles(store)["id:44"]["wins"] == 0

    def test_tracks_are_independent(self, reconciler, store, source, t0):
        write_snapshot(store, TRACK_POOL, [e(1, 1, 10), e(2, 9, 20)], t0)
        reconciler.reconcile()
        assert profiles(store, TRACK_POOL) == {}
        pool_entries = store.select_all(history_entries, {"elo_after": None})
        assert len(pool_entries) == 2

    def test_nickname_only_player_later_seen_with_id_is_not_counted_twice(self, store, source, t0):
        rec = HistoryReconciler(store, EligibilityFilter(source), TRACK_RATING)
        write_snapshot(store, TRACK_RATING, [e(1, 1, 10, nickname="a"), e(2, None, 5, nickname="Foo")], t0)
        rec.reconcile()
        write_snapshot(store, TRACK_RATING, [e(1, 7, 10, nickname="Foo"), e(2, 1, 5, nickname="a")],
                       t0 + timedelta(days=7))
        rec.reconcile()
        before = profiles(store)

        counts = {k: p["participations"] for k, p in before.items()}
        assert counts == {"id:1": 2, "nick:foo": 1, "id:7": 1}
        assert sum(counts.values()) == len(store.select_all(history_entries))

        rec.reconcile()
        assert profiles(store) == before

    def test_reconciled_identity_is_stored_on_entries(self, reconciler, store):
        reconciler.reconcile()
        keys = {(r["snapshot_id"], r["position"]): r["player_key"] for r in store.select_all(history_entries)}
        assert set(keys.values()) == {"id:1", "id:2", "id:3"}


class TestRebuild:

    def test_full_rebuild_matches_incremental(self, reconciler, store):
        reconciler.reconcile()
        before = profiles(store)
        store.update(player_profiles, {"player_key": "id:1"}, {"wins": 42})
        reconciler.rebuild()
        assert profiles(store) == before

    def test_subset_rebuild_leaves_others_alone(self, reconciler, store):
        reconciler.reconcile()
        before = profiles(store)
        store.update(player_profiles, {"player_key": "id:1"}, {"wins": 42})
        store.update(player_profiles, {"player_key": "id:2"}, {"wins": 42, "rating": 1})
        reconciler.rebuild({"id:2"})
        after = profiles(store)
        assert after["id:2"] == before["id:2"]
        assert after["id:1"]["wins"] == 42


class TestIdentityResolver:

    def test_user_id_wins(self):
        assert IdentityResolver().resolve({"user_id": 5, "nickname": "x"}) == "id:5"

    def test_unknown_nickname_gets_own_key(self):
        r = IdentityResolver()
        assert r.resolve({"user_id": None, "nickname": " Foo "}) == "nick:foo"
        assert r.resolve({"user_id": None, "nickname": "FOO"}) == "nick:foo"

    def test_existing_profile_matched_by_nickname(self):
        r = IdentityResolver(profiles=[{"player_key": "nick:bar", "nickname": "Bar"}])
        assert r.resolve({"user_id": None, "nickname": "bar"}) == "nick:bar"

    def test_neither_id_nor_nickname(self):
        with pytest.raises(DataIntegrityAmbiguity):
            IdentityResolver().resolve({"id": 1, "user_id": None, "nickname": None})
