"""Tests for position assignment."""

from datetime import datetime

from ppcup.ranking import RankEntry, assign_positions, changed_positions

EARLY = datetime(2026, 1, 1, 10, 0)
LATE = datetime(2026, 1, 1, 11, 0)


class TestAssignPositions:

    def test_tie_broken_by_registration_time(self):
        entries = [
            RankEntry("late", 100, LATE),
            RankEntry("low", 50, EARLY),
            RankEntry("early", 100, EARLY),
        ]
        assert assign_positions(entries) == [("early", 1), ("late", 2), ("low", 3)]

    def test_positions_are_unique_and_dense(self):
        entries = [RankEntry(i, 10, EARLY) for i in range(5)]
        positions = [p for _, p in assign_positions(entries)]
        assert positions == [1, 2, 3, 4, 5]

    def test_empty(self):
        assert assign_positions([]) == []

    def test_missing_timestamp_loses_tie(self):
        entries = [RankEntry("none", 10, None), RankEntry("dated", 10, LATE)]
        assert assign_positions(entries) == [("dated", 1), ("none", 2)]


def test_changed_positions_skips_unchanged():
    entries = [RankEntry("a", 100, EARLY), RankEntry("b", 90, EARLY), RankEntry("c", 95, LATE)]
    current = {"a": 1, "b": 2, "c": 3}
    assert changed_positions(entries, current) == [("c", 2), ("b", 3)]
