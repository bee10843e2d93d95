"""
Spaced repetition scheduler (SM-2 variant).

Quality scale: 0 (blackout) .. 5 (perfect). 3 and above counts as a
successful recall; anything below resets the card.

    success: interval 1 -> 6 -> round(interval * ease) -> ...
             (capped at MAX_INTERVAL days)
    failure: repetitions = 0, interval = 0 (due again immediately)

The ease factor moves on every review and never drops below 1.3.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from utils.errors import InvalidQualityError
from utils.models import CardStats, MAX_INTERVAL, MIN_EASE_FACTOR
from utils.utils import as_utc

# Quality constants
BLACKOUT = 0
WRONG = 1
WRONG_FAMILIAR = 2
HARD = 3
GOOD = 4
PERFECT = 5

QUALITIES = (BLACKOUT, WRONG, WRONG_FAMILIAR, HARD, GOOD, PERFECT)
PASSING_QUALITY = HARD

QUALITY_LABELS = {
    BLACKOUT: 'Blank',
    WRONG: 'Wrong',
    WRONG_FAMILIAR: 'Almost',
    HARD: 'Hard',
    GOOD: 'Good',
    PERFECT: 'Easy',
}

FIRST_INTERVAL = 1
SECOND_INTERVAL = 6

# A card whose interval reaches this many days counts as mastered
MASTERY_INTERVAL = 30


@dataclass
class ReviewResult:
    stats: CardStats
    mastered: bool


def validate_quality(quality) -> int:
    # bool is an int subclass; True/False are not ratings
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(f"quality must be an integer 0-5, got {quality!r}")
    if quality not in QUALITIES:
        raise InvalidQualityError(f"quality must be between 0 and 5, got {quality}")
    return quality


def round_half_up(value: float) -> int:
    """Round .5 away from zero (Python's round() would go to even)."""
    return int(Decimal(repr(value)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def next_ease_factor(ease_factor: float, quality: int) -> float:
    miss = 5 - quality
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def next_interval(stats: CardStats, quality: int) -> int:
    if quality < PASSING_QUALITY:
        return 0
    if stats.repetitions == 0:
        return FIRST_INTERVAL
    if stats.repetitions == 1:
        return SECOND_INTERVAL
    return round_half_up(min(stats.interval * stats.ease_factor, MAX_INTERVAL))


def apply_review(stats: CardStats, quality: int, review_time: datetime) -> ReviewResult:
    """
    Given a card's scheduling state and a quality (0-5), return the next state.

    Pure: the input stats are not modified. ReviewResult.mastered is set for
    every review that lands at MASTERY_INTERVAL days or more, not only the
    first one to cross it; callers bumping a mastered counter will count the
    same card again on each later success.
    """
    quality = validate_quality(quality)
    review_time = as_utc(review_time)

    interval = next_interval(stats, quality)
    if quality >= PASSING_QUALITY:
        repetitions = stats.repetitions + 1
    else:
        repetitions = 0

    new_stats = replace(
        stats,
        repetitions=repetitions,
        interval=interval,
        ease_factor=next_ease_factor(stats.ease_factor, quality),
        due_date=review_time + timedelta(days=interval),
        last_review=review_time,
    )
    return ReviewResult(stats=new_stats, mastered=interval >= MASTERY_INTERVAL)


def preview_intervals(stats: CardStats) -> dict[int, int]:
    """Interval in days each quality would give, for rating buttons."""
    return {quality: next_interval(stats, quality) for quality in QUALITIES}


def format_interval(days: int) -> str:
    """Human-readable interval label."""
    if days <= 0:
        return "now"
    elif days < 30:
        return f"{days}d"
    elif days < 365:
        months = round(days / 30)
        return f"{months}mo"
    else:
        years = round(days / 365, 1)
        return f"{years}y"
