"""Tests for the pp-gain -> cup points conversion."""

import pytest

from ppcup.points import calculate_points, round_half_away


class TestCalculatePoints:

    @pytest.mark.parametrize("start,end", [(1000, 1000), (1500, 1200), (5000.9, 5000.1), (0, 0)])
    def test_no_gain_scores_zero(self, start, end):
        assert calculate_points(start, end) == 0

    def test_spanning_one_bracket_boundary(self):
        # 500pp at x1 + 500pp at x2
        assert calculate_points(500, 1500) == 1500

    def test_two_boundaries_apart(self):
        # 1pp in the 3k bracket (x3) + 1pp in the 4k bracket (x4)
        assert calculate_points(2999, 3001) == 7

    def test_inside_single_bracket(self):
        assert calculate_points(4200, 4210) == 50

    def test_fractions_are_floored_first(self):
        # floor(2999.9)=2999, floor(3001.2)=3001
        assert calculate_points(2999.9, 3001.2) == 7
        # both floor to 1000: no gain
        assert calculate_points(1000.1, 1000.9) == 0

    def test_starting_on_a_boundary(self):
        assert calculate_points(3000, 3001) == 4

    def test_many_brackets(self):
        # 1000 * (1 + 2 + 3)
        assert calculate_points(0, 3000) == 6000

    def test_high_rated_gain_worth_more(self):
        assert calculate_points(7000, 7010) > calculate_points(1000, 1010)


def test_round_half_away_from_zero():
    assert round_half_away(2.5) == 3
    assert round_half_away(3.5) == 4
    assert round_half_away(-2.5) == -3
    assert round_half_away(2.4999) == 2
