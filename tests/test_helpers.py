"""
Tests for date normalization and id-list parsing helpers.

Covers:
  - normalize_day: accepted shapes, idempotence, no timezone shifting
  - normalize_datetime: date-time canonical form
  - invalid / out-of-range input raises ValueError
  - parse_id_list: comma text, JSON text, lists, order preservation
"""

from datetime import date, datetime

import pytest

from storydesk.utils.helpers import (
    normalize_datetime,
    normalize_day,
    parse_day,
    parse_id_list,
)


class TestNormalizeDay:
    @pytest.mark.parametrize("raw", [
        "2024-03-05",
        "2024/03/05",
        "2024-3-5",
        "2024-03-05 10:00",
        "2024-03-05 23:59:59",
        "2024-03-05T10:00:00Z",
        "2024-03-05T10:00:00.123+08:00",
        date(2024, 3, 5),
        datetime(2024, 3, 5, 18, 30),
    ])
    def test_accepted_shapes_collapse_to_one_day(self, raw):
        assert normalize_day(raw) == "2024-03-05"

    def test_utc_suffix_keeps_calendar_day_as_written(self):
        """A late-evening UTC stamp is not shifted into the next day."""
        assert normalize_day("2024-03-05T23:30:00Z") == "2024-03-05"

    @pytest.mark.parametrize("raw", ["2024-03-05T10:00:00Z", "2024/1/9", "2024-12-31 08:00"])
    def test_idempotent(self, raw):
        once = normalize_day(raw)
        assert normalize_day(once) == once

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_is_none(self, raw):
        assert normalize_day(raw) is None

    @pytest.mark.parametrize("raw", ["2024-02-30", "05/03/2024", "yesterday", "2024-03-05 25:00"])
    def test_invalid_raises(self, raw):
        with pytest.raises(ValueError):
            normalize_day(raw)

    def test_lexical_order_matches_calendar_order(self):
        assert normalize_day("2024/5/9") < normalize_day("2024-05-10")

    def test_parse_day_returns_date(self):
        assert parse_day("2024/05/10") == date(2024, 5, 10)


class TestNormalizeDatetime:
    def test_date_only_gets_midnight(self):
        assert normalize_datetime("2024-03-05") == "2024-03-05 00:00:00"

    def test_minutes_only_gets_zero_seconds(self):
        assert normalize_datetime("2024-03-05T10:30") == "2024-03-05 10:30:00"

    def test_fraction_and_zone_dropped(self):
        assert normalize_datetime("2024-03-05T10:30:15.500Z") == "2024-03-05 10:30:15"


class TestParseIdList:
    def test_comma_text(self):
        assert parse_id_list("7,9") == [7, 9]

    def test_json_text_deduplicates_and_keeps_order(self):
        assert parse_id_list("[9, 7, 9]") == [9, 7]

    def test_list_of_numeric_strings(self):
        assert parse_id_list(["3", 1, " 2 "]) == [3, 1, 2]

    def test_single_int(self):
        assert parse_id_list(4) == [4]

    @pytest.mark.parametrize("raw", [None, "", "  "])
    def test_empty(self, raw):
        assert parse_id_list(raw) == []

    @pytest.mark.parametrize("raw", ["7,x", True, [1, None], "{\"a\": 1}", 3.5])
    def test_invalid_raises(self, raw):
        with pytest.raises(ValueError):
            parse_id_list(raw)
