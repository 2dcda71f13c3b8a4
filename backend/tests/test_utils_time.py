"""Tests for time utility functions."""

import math

import pytest

from gridlog.utils_time import (
    format_laptime_ms,
    parse_laptime_to_ms,
    sector_total_ms,
)


class TestParseLaptimeToMs:
    """Test cases for parse_laptime_to_ms function."""

    def test_valid_mss_format(self):
        assert parse_laptime_to_ms("1:23.456") == 83456
        assert parse_laptime_to_ms("2:30.123") == 150123
        assert parse_laptime_to_ms("5:59.999") == 359999

    def test_valid_ss_format(self):
        assert parse_laptime_to_ms("23.456") == 23456
        assert parse_laptime_to_ms("0.001") == 1

    def test_whitespace_handling(self):
        assert parse_laptime_to_ms("  1:30.500  ") == 90500

    def test_invalid_empty_string(self):
        with pytest.raises(ValueError, match="Laptime must be a non-empty string"):
            parse_laptime_to_ms("")

    def test_invalid_format(self):
        for bad in ("1:23", ":23.456", "1:60.456", "abc"):
            with pytest.raises(ValueError, match="Invalid laptime format"):
                parse_laptime_to_ms(bad)


class TestFormatLaptimeMs:

    def test_format(self):
        assert format_laptime_ms(83456) == "1:23.456"
        assert format_laptime_ms(59999) == "0:59.999"
        assert format_laptime_ms(600000) == "10:00.000"

    def test_format_parse_agree(self):
        assert parse_laptime_to_ms(format_laptime_ms(91234)) == 91234

    def test_no_time(self):
        assert format_laptime_ms(None) is None
        assert format_laptime_ms(0) is None
        assert format_laptime_ms(math.nan) is None


def test_sector_total_ms():
    assert sector_total_ms(5000, 1) == 65000
    assert sector_total_ms(29500) == 29500
    assert sector_total_ms(0, 0) is None
