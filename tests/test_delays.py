"""Tests for delay string parsing."""

from __future__ import annotations

import pytest

from rivor.automation.delays import parse_delay


class TestParseDelay:
    @pytest.mark.parametrize(
        ("delay", "minutes"),
        [
            ("15 minutes", 15),
            ("1 minute", 1),
            ("1 hour", 60),
            ("2 hours", 120),
            ("1 day", 1440),
            ("2 days", 2880),
            ("1 week", 10080),
            ("3 weeks", 30240),
        ],
    )
    def test_units(self, delay, minutes):
        assert parse_delay(delay) == minutes

    def test_case_insensitive(self):
        assert parse_delay("2 DAYS") == 2880
        assert parse_delay("1 Hour") == 60

    def test_no_space_between_number_and_unit(self):
        assert parse_delay("30minutes") == 30

    def test_embedded_in_text(self):
        assert parse_delay("after 2 days") == 2880

    @pytest.mark.parametrize("delay", ["garbage", "", "soon", "two days", "5 months"])
    def test_unparseable_is_immediate(self, delay):
        assert parse_delay(delay) == 0

    def test_none_is_immediate(self):
        assert parse_delay(None) == 0
