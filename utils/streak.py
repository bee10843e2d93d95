"""
Practice streak bookkeeping.

Days are UTC calendar days. Several reviews on the same day count once.
"""

from dataclasses import replace
from datetime import datetime

from utils.models import UserStats
from utils.utils import utc_day


def next_streak(stats: UserStats, review_time: datetime) -> UserStats:
    today = utc_day(review_time)
    last = stats.last_practice

    if last is None:
        return replace(stats, streak=1, last_practice=today)

    gap = (today - last).days
    if gap == 1:
        return replace(stats, streak=stats.streak + 1, last_practice=today)
    if gap > 1:
        return replace(stats, streak=1, last_practice=today)

    # same day, or the clock went backwards
    return stats


def contribution_level(reviews: int) -> int:
    """Bucket a day's review count into an activity level 0-4."""
    if reviews <= 0:
        return 0
    if reviews <= 5:
        return 1
    if reviews <= 10:
        return 2
    if reviews <= 15:
        return 3
    return 4
