"""
Tests for utils/utils.py: card/deck text parsing, tags and UTC time helpers.
"""
from datetime import date, datetime, timedelta, timezone

from utils.utils import (
    as_utc, from_db_time, new_id, normalize_tags, parse_deck_text, parse_iso,
    parse_text, to_db_time, utc_day,
)


class TestParseText:
    # ── Pipe separator ────────────────────────────────────────

    def test_pipe_basic(self):
        r = parse_text("What does len() return? | The number of items")
        assert r['question'] == 'What does len() return?'
        assert r['answer'] == 'The number of items'

    def test_pipe_strips_whitespace(self):
        r = parse_text("  Tokyo  |  Capital  ")
        assert r['question'] == 'Tokyo'
        assert r['answer'] == 'Capital'

    def test_pipe_splits_on_first_only(self):
        r = parse_text("a | b | c")
        assert r['question'] == 'a'
        assert r['answer'] == 'b | c'

    def test_pipe_empty_answer(self):
        r = parse_text("question |")
        assert r['question'] == 'question'
        assert r['answer'] == ''

    def test_pipe_empty_question(self):
        r = parse_text("| answer")
        assert r['question'] == ''
        assert r['answer'] == 'answer'

    # ── Newline separator ─────────────────────────────────────

    def test_newline_two_lines(self):
        r = parse_text("Reverse a list\nxs[::-1]")
        assert r['question'] == 'Reverse a list'
        assert r['answer'] == 'xs[::-1]'

    def test_newline_multiple_answer_lines_joined(self):
        r = parse_text("Swap two vars\na, b = b, a\n# no temp needed")
        assert r['question'] == 'Swap two vars'
        assert r['answer'] == 'a, b = b, a\n# no temp needed'

    def test_newline_ignores_blank_lines(self):
        r = parse_text("\n\nTokyo\n\nCapital\n\n")
        assert r['question'] == 'Tokyo'
        assert r['answer'] == 'Capital'

    # ── Single line (no answer) ───────────────────────────────

    def test_single_line_gives_empty_answer(self):
        r = parse_text("Just a question")
        assert r['question'] == 'Just a question'
        assert r['answer'] == ''

    def test_empty_string(self):
        r = parse_text("")
        assert r['question'] == ''
        assert r['answer'] == ''

    def test_pipe_takes_priority_over_newline(self):
        r = parse_text("a | b\nc")
        assert r['question'] == 'a'
        assert r['answer'] == 'b\nc'


class TestParseDeckText:
    def test_name_only(self):
        assert parse_deck_text("  Python  ") == {'name': 'Python', 'description': ''}

    def test_name_and_description(self):
        r = parse_deck_text("Rust | ownership and borrowing")
        assert r['name'] == 'Rust'
        assert r['description'] == 'ownership and borrowing'

    def test_extra_bars_stay_in_description(self):
        assert parse_deck_text("SQL | joins | indexes")['description'] == 'joins | indexes'


class TestNormalizeTags:
    def test_strips_and_dedupes_in_order(self):
        assert normalize_tags([' py', 'sql', 'py', '', '  ']) == ['py', 'sql']

    def test_none_gives_empty(self):
        assert normalize_tags(None) == []

    def test_non_strings_are_stringified(self):
        assert normalize_tags([3, 'x']) == ['3', 'x']


class TestTime:
    def test_naive_is_taken_as_utc(self):
        assert as_utc(datetime(2024, 1, 1, 12)) == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def test_aware_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        assert as_utc(datetime(2024, 1, 1, 1, tzinfo=plus_two)) == datetime(2023, 12, 31, 23, tzinfo=timezone.utc)

    def test_db_time_round_trip_drops_microseconds(self):
        value = datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=timezone.utc)
        assert to_db_time(value) == '2024-05-06 07:08:09'
        assert from_db_time(to_db_time(value)) == value.replace(microsecond=0)

    def test_from_db_time_none(self):
        assert from_db_time(None) is None

    def test_utc_day_uses_utc_calendar(self):
        minus_five = timezone(timedelta(hours=-5))
        # 21:00 in UTC-5 is already the next day in UTC
        assert utc_day(datetime(2024, 3, 1, 21, tzinfo=minus_five)) == date(2024, 3, 2)

    def test_parse_iso_accepts_z_suffix(self):
        assert parse_iso('2024-03-01T10:00:00Z') == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)

    def test_new_id_is_unique_hex(self):
        a, b = new_id(), new_id()
        assert a != b
        assert len(a) == 32 and int(a, 16) >= 0
