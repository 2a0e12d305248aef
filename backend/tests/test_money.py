import math

import pytest

from prism.services.money import (
    amounts_equal,
    format_amount,
    parse_amount,
    parse_optional_amount,
    percent_of,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1500", 1500.0),
        (" 12.5", 12.5),
        ("12.5kg", 12.5),
        (".5", 0.5),
        ("1e3", 1000.0),
        (42, 42.0),
        (3.25, 3.25),
    ],
)
def test_parse_amount_reads_leading_number(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "abc", None, "Infinity", "-0", True])
def test_parse_amount_coerces_invalid_input_to_zero(raw):
    # Lenient by design: blank or garbage text counts as 0.
    value = parse_amount(raw)
    assert value == 0.0
    assert math.copysign(1.0, value) == 1.0


def test_parse_optional_amount_keeps_blank_distinct_from_zero():
    assert parse_optional_amount("") is None
    assert parse_optional_amount("  ") is None
    assert parse_optional_amount("abc") is None
    assert parse_optional_amount("0") == 0.0


def test_format_amount_rounds_like_fixed_two_decimals():
    assert format_amount(2) == "2.00"
    assert format_amount(0.125) == "0.13"
    # 1.005 is 1.00499999... in binary.
    assert format_amount(1.005) == "1.00"
    assert format_amount(-1.5) == "-1.50"
    assert format_amount(100 / 3) == "33.33"


def test_format_amount_non_finite_is_zero():
    assert format_amount(float("nan")) == "0.00"
    assert format_amount(float("inf")) == "0.00"


def test_amounts_equal_compares_numerically():
    assert amounts_equal("350", "350.00")
    assert amounts_equal("", "0")
    assert not amounts_equal("350.01", "350")


def test_percent_of():
    assert percent_of("1000", "20") == "200.00"
    assert percent_of("1000", "") == "0.00"
    assert percent_of("", "50") == "0.00"


def test_format_amount_handles_huge_values():
    assert format_amount(1e21) == "1000000000000000000000.00"
    assert format_amount(1e30) == "1000000000000000019884624838656.00"
    assert format_amount(-1e30) == "-1000000000000000019884624838656.00"
    largest = format_amount(parse_amount("1.7976931348623157e308"))
    assert largest.endswith(".00")
    assert len(largest) == 309 + 3


def test_parse_amount_only_reads_ascii_digits():
    assert parse_amount("١٢") == 0.0
    assert parse_optional_amount("١٢") is None
    assert parse_amount(" 12") == 12.0
