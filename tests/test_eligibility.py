"""Tests for win eligibility and winner selection."""

from ppcup.eligibility import EligibilityFilter


def entry(position, user_id, rating_start, play_count, nickname=None):
    return {
        "position": position,
        "user_id": user_id,
        "nickname": nickname or f"user{user_id}",
        "rating_start": rating_start,
        "play_count": play_count,
    }


class TestIsQualified:

    def test_high_rating_and_plays_qualifies(self, source):
        f = EligibilityFilter(source, min_rating=4000, min_play_count=30000)
        assert f.is_qualified(entry(1, 1, 5000, 40000))
        assert source.calls == []

    def test_low_rating_never_fetches(self, source):
        f = EligibilityFilter(source, min_rating=4000, min_play_count=30000)
        assert not f.is_qualified(entry(1, 1, 3999, 0))
        assert source.calls == []

    def test_too_few_plays(self, source):
        f = EligibilityFilter(source, min_rating=4000, min_play_count=30000)
        assert not f.is_qualified(entry(1, 1, 5000, 29999))

    def test_missing_play_count_uses_live_value(self, source):
        source.add_user(7, "old", 5200, play_count=45000)
        f = EligibilityFilter(source, min_rating=4000, min_play_count=30000)
        assert f.is_qualified(entry(1, 7, 5000, None))
        assert f.is_qualified(entry(3, 7, 5000, 0))
        # memoised per user
        assert source.calls == [("stats", 7)]

    def test_failed_fetch_is_ineligible_and_flagged(self, source):
        f = EligibilityFilter(source, min_rating=4000, min_play_count=30000)
        assert not f.is_qualified(entry(1, 99, 5000, 0, nickname="gone"))
        assert f.suspected_banned == {99: "gone"}

    def test_no_user_id_cannot_be_verified(self, source):
        f = EligibilityFilter(source, min_rating=4000, min_play_count=30000)
        assert not f.is_qualified(entry(1, None, 5000, 0))
        assert source.calls == []


class TestFindWinner:

    def test_first_qualified_in_position_order(self, source):
        f = EligibilityFilter(source, min_rating=4000, min_play_count=30000)
        entries = [
            entry(3, 3, 6000, 50000),
            entry(1, 1, 2000, 50000),   # rating too low
            entry(2, 2, 4500, 35000),
        ]
        assert f.find_winner(entries)["user_id"] == 2

    def test_nobody_qualifies(self, source):
        f = EligibilityFilter(source, min_rating=4000, min_play_count=30000)
        assert f.find_winner([entry(1, 1, 100, 10), entry(2, 2, 200, 20)]) is None
