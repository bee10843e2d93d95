"""
Tests for utils/streak.py.
"""
from datetime import date, datetime, timezone

import pytest

from utils.models import UserStats
from utils.streak import contribution_level, next_streak


def at(day: int, hour: int = 12) -> datetime:
    return datetime(2024, 3, day, hour, tzinfo=timezone.utc)


class TestNextStreak:
    def test_first_practice_starts_at_one(self):
        s = next_streak(UserStats(), at(10))
        assert s.streak == 1
        assert s.last_practice == date(2024, 3, 10)

    def test_consecutive_day_extends(self):
        s = next_streak(UserStats(streak=4, last_practice=date(2024, 3, 9)), at(10))
        assert s.streak == 5
        assert s.last_practice == date(2024, 3, 10)

    def test_same_day_is_unchanged(self):
        before = UserStats(streak=4, last_practice=date(2024, 3, 10))
        assert next_streak(before, at(10, hour=23)) == before

    def test_skipped_day_resets_to_one(self):
        s = next_streak(UserStats(streak=9, last_practice=date(2024, 3, 8)), at(10))
        assert s.streak == 1
        assert s.last_practice == date(2024, 3, 10)

    def test_clock_going_backwards_is_unchanged(self):
        before = UserStats(streak=3, last_practice=date(2024, 3, 12))
        assert next_streak(before, at(10)) == before

    def test_counters_are_carried_over(self):
        s = next_streak(UserStats(total_cards=7, mastered=2, learning=5), at(10))
        assert (s.total_cards, s.mastered, s.learning) == (7, 2, 5)

    def test_midnight_boundary_is_utc(self):
        s = next_streak(UserStats(streak=1, last_practice=date(2024, 3, 9)), datetime(2024, 3, 10, 0, 1, tzinfo=timezone.utc))
        assert s.streak == 2


class TestContributionLevel:
    @pytest.mark.parametrize('reviews, level', [
        (0, 0), (1, 1), (5, 1), (6, 2), (10, 2), (11, 3), (15, 3), (16, 4), (100, 4),
    ])
    def test_buckets(self, reviews, level):
        assert contribution_level(reviews) == level
