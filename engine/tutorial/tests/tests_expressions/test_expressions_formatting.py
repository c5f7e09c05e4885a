"""
Tutorial Engine -- Value Formatting Tests

format_value applies StateValue's fixed format codes; display_value is the
text a reader sees for any raw value.
"""

import pytest

from engine.tutorial.formatting import display_value, format_value


class TestFormatCodes:
    @pytest.mark.parametrize(
        "value, fmt, expected",
        [
            (3.7, ".0f", "4"),
            (2.5, ".0f", "3"),
            (-2.5, ".0f", "-2"),
            (3.14159, ".1f", "3.1"),
            (3.14159, ".2f", "3.14"),
            (0.256, ".0%", "26%"),
            (0.256, ".1%", "25.6%"),
            (1.5, "+.2f", "+1.50"),
            (-1.5, "+.2f", "-1.50"),
            (0, "+.2f", "+0.00"),
            (5, ".2f", "5.00"),
        ],
    )
    def test_codes(self, value, fmt, expected):
        assert format_value(value, fmt) == expected

    def test_no_negative_zero(self):
        assert format_value(-0.001, ".1f") == "0.0"


class TestPassThrough:
    def test_unknown_code(self):
        assert format_value(3.14159, ".3e") == 3.14159

    def test_absent_code(self):
        assert format_value(2, None) == 2
        assert format_value(2, "") == 2

    def test_non_numeric_value(self):
        assert format_value("abc", ".2f") == "abc"
        assert format_value(True, ".2f") is True

    def test_missing_value(self):
        assert format_value(None, ".2f") is None

    def test_non_finite(self):
        assert format_value(float("inf"), ".2f") == float("inf")


class TestDisplayValue:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, ""),
            (True, "true"),
            (False, "false"),
            (5, "5"),
            (5.0, "5"),
            (2.5, "2.5"),
            (0.1 + 0.2, "0.30000000000000004"),
            (float("nan"), "NaN"),
            (float("-inf"), "-Infinity"),
            ("text", "text"),
        ],
    )
    def test_values(self, value, expected):
        assert display_value(value) == expected
