"""
Tests for utils/srs.py: pure Python, no Telegram, no DB, no async.
"""
from datetime import datetime, timedelta, timezone

import pytest

from utils.errors import InvalidQualityError, ValidationError
from utils.models import CardStats
from utils.srs import (
    BLACKOUT, GOOD, HARD, PERFECT, WRONG_FAMILIAR,
    apply_review, format_interval, next_ease_factor, preview_intervals,
    round_half_up, validate_quality,
)

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


# ── Shared helper ─────────────────────────────────────────────

def stats(repetitions=0, interval=0, ease_factor=2.5):
    return CardStats(due_date=NOW, repetitions=repetitions, interval=interval, ease_factor=ease_factor)


# ── Successful recall ─────────────────────────────────────────

class TestSuccess:
    def test_perfect_on_new_card(self):
        r = apply_review(stats(), PERFECT, NOW)
        assert r.stats.interval == 1
        assert r.stats.repetitions == 1
        assert r.stats.ease_factor == pytest.approx(2.6)
        assert r.stats.due_date == NOW + timedelta(days=1)
        assert r.stats.last_review == NOW
        assert r.mastered is False

    def test_second_success_is_six_days(self):
        r = apply_review(stats(repetitions=1, interval=1), GOOD, NOW)
        assert r.stats.interval == 6
        assert r.stats.repetitions == 2
        assert r.stats.due_date == NOW + timedelta(days=6)

    def test_later_success_multiplies_by_ease(self):
        r = apply_review(stats(repetitions=2, interval=6, ease_factor=2.5), GOOD, NOW)
        assert r.stats.interval == 15
        assert r.stats.repetitions == 3

    def test_interval_uses_ease_before_update(self):
        # 6 * 2.36 = 14.16; the new ease from a HARD answer is not used yet
        r = apply_review(stats(repetitions=2, interval=6, ease_factor=2.36), HARD, NOW)
        assert r.stats.interval == 14
        assert r.stats.ease_factor == pytest.approx(2.22)

    def test_half_rounds_up(self):
        # 5 * 2.5 = 12.5, round() would give 12
        r = apply_review(stats(repetitions=2, interval=5, ease_factor=2.5), GOOD, NOW)
        assert r.stats.interval == 13

    def test_interval_is_capped(self):
        r = apply_review(stats(repetitions=9, interval=20000, ease_factor=2.5), PERFECT, NOW)
        assert r.stats.interval == 36500
        assert r.stats.due_date == NOW + timedelta(days=36500)

        again = apply_review(r.stats, PERFECT, NOW)
        assert again.stats.interval == 36500

    def test_good_keeps_ease(self):
        assert apply_review(stats(), GOOD, NOW).stats.ease_factor == pytest.approx(2.5)

    def test_hard_still_counts_as_recall(self):
        r = apply_review(stats(), HARD, NOW)
        assert r.stats.repetitions == 1
        assert r.stats.interval == 1
        assert r.stats.ease_factor == pytest.approx(2.36)


# ── Failed recall ─────────────────────────────────────────────

class TestFailure:
    def test_fail_resets_card(self):
        r = apply_review(stats(repetitions=2, interval=10, ease_factor=2.0), WRONG_FAMILIAR, NOW)
        assert r.stats.repetitions == 0
        assert r.stats.interval == 0
        assert r.stats.ease_factor == pytest.approx(1.68)
        assert r.stats.due_date == NOW

    def test_blackout_drops_ease(self):
        assert apply_review(stats(), BLACKOUT, NOW).stats.ease_factor == pytest.approx(1.7)

    def test_ease_never_below_floor(self):
        r = apply_review(stats(ease_factor=1.3), BLACKOUT, NOW)
        assert r.stats.ease_factor == pytest.approx(1.3)

    def test_relearn_after_fail_starts_at_one_day(self):
        failed = apply_review(stats(repetitions=4, interval=40), BLACKOUT, NOW).stats
        r = apply_review(failed, GOOD, NOW)
        assert r.stats.interval == 1


# ── Mastery ───────────────────────────────────────────────────

class TestMastery:
    def test_below_threshold(self):
        # 11 * 2.5 = 27.5 -> 28
        assert apply_review(stats(repetitions=3, interval=11), GOOD, NOW).mastered is False

    def test_exactly_thirty_days(self):
        r = apply_review(stats(repetitions=3, interval=12), GOOD, NOW)
        assert r.stats.interval == 30
        assert r.mastered is True

    def test_reported_on_every_review_past_threshold(self):
        first = apply_review(stats(repetitions=3, interval=15), GOOD, NOW)
        second = apply_review(first.stats, GOOD, NOW)
        assert first.mastered is True
        assert second.mastered is True

    def test_fail_is_not_mastered(self):
        assert apply_review(stats(repetitions=5, interval=60), BLACKOUT, NOW).mastered is False


# ── Input handling ────────────────────────────────────────────

class TestInput:
    @pytest.mark.parametrize('quality', [-1, 6, 2.5, '3', None, True])
    def test_invalid_quality_raises(self, quality):
        with pytest.raises(InvalidQualityError):
            apply_review(stats(), quality, NOW)

    def test_invalid_quality_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            validate_quality(9)

    def test_input_is_not_mutated(self):
        before = stats(repetitions=2, interval=6)
        apply_review(before, GOOD, NOW)
        assert before.repetitions == 2
        assert before.interval == 6
        assert before.last_review is None

    def test_naive_review_time_is_utc(self):
        r = apply_review(stats(), GOOD, datetime(2024, 3, 10, 12, 0))
        assert r.stats.due_date == NOW + timedelta(days=1)


# ── Helpers ───────────────────────────────────────────────────

class TestHelpers:
    def test_round_half_up(self):
        assert round_half_up(12.5) == 13
        assert round_half_up(2.5) == 3
        assert round_half_up(14.16) == 14
        assert round_half_up(14.49) == 14

    def test_next_ease_factor(self):
        assert next_ease_factor(2.5, PERFECT) == pytest.approx(2.6)
        assert next_ease_factor(1.35, BLACKOUT) == pytest.approx(1.3)

    def test_preview_intervals(self):
        previews = preview_intervals(stats(repetitions=2, interval=6))
        assert previews == {0: 0, 1: 0, 2: 0, 3: 15, 4: 15, 5: 15}

    def test_format_interval(self):
        assert format_interval(0) == "now"
        assert format_interval(1) == "1d"
        assert format_interval(29) == "29d"
        assert format_interval(45) == "2mo"
        assert format_interval(400) == "1.1y"
