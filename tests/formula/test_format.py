from __future__ import annotations

import pytest

from exgrid.formula.format import FORMAT_ALIASES, format_cell


@pytest.mark.parametrize(
    ("value", "spec", "expected"),
    [
        (1234.5, "currency", "$1,234.50"),
        (0.125, "percent", "12.50%"),
        (0.125, "0%", "13%"),
        (2.5, "#,##0", "3"),
        (1234567.891, "thousands", "1,234,568"),
        (-0.001, "0.00", "0.00"),
        (-1.005, "0.00", "-1.01"),
        (45293, "date", "01/02/2024"),
        (45293, "m/d/yy", "1/2/24"),
        ("12", "number", "12.00"),
    ],
)
def test_number_formats(value: object, spec: str, expected: str) -> None:
    assert format_cell(value, spec) == expected  # type: ignore[arg-type]


def test_general_format() -> None:
    assert format_cell(3.0) == "3"
    assert format_cell(0.1 + 0.2) == "0.30000000000000004"
    assert format_cell(3.0, "General") == "3"
    assert format_cell("12") == "12"


def test_non_numeric_values_pass_through() -> None:
    assert format_cell(None, "0.00") == ""
    assert format_cell(True, "0.00") == "TRUE"
    assert format_cell("abc", "0.00") == "abc"
    assert format_cell("#N/A", "currency") == "#N/A"


def test_aliases_resolve_case_insensitively() -> None:
    assert format_cell(1, "Currency") == format_cell(1, FORMAT_ALIASES["currency"])


@pytest.mark.parametrize(
    ("spec", "expected"),
    [
        ("number", "1000000000000000000000000000000.00"),
        ("currency", "$1,000,000,000,000,000,000,000,000,000,000.00"),
        ("percent", "100000000000000000000000000000000.00%"),
        ("thousands", "1,000,000,000,000,000,000,000,000,000,000"),
        ("0.0000", "1000000000000000000000000000000.0000"),
    ],
)
def test_large_numbers_format(spec: str, expected: str) -> None:
    assert format_cell(1e30, spec) == expected
    assert format_cell(-1e30, spec) == f"-{expected}"


def test_large_numbers_under_date_format_fall_back_to_general() -> None:
    assert format_cell(1e30, "date") == format_cell(1e30)
