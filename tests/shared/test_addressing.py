from __future__ import annotations

import pytest

from exgrid.shared.a1 import (
    cell_coordinates,
    cell_id,
    column_index_to_label,
    column_label_to_index,
    expand_range,
    normalize_cell_id,
    normalize_range,
    parse_cell_id,
    parse_range_geometry,
    range_bounds,
    range_cell_count,
    range_rows,
    split_a1,
)


def test_column_roundtrip() -> None:
    assert column_label_to_index("A") == 1
    assert column_label_to_index("Z") == 26
    assert column_label_to_index("AA") == 27
    assert column_index_to_label(1) == "A"
    assert column_index_to_label(26) == "Z"
    assert column_index_to_label(27) == "AA"
    assert column_index_to_label(16384) == "XFD"


def test_column_roundtrip_full_width() -> None:
    for index in range(1, 16385):
        assert column_label_to_index(column_index_to_label(index)) == index


def test_cell_id_is_zero_based() -> None:
    assert cell_id(0, 0) == "A1"
    assert cell_id(9, 27) == "AB10"
    with pytest.raises(ValueError):
        cell_id(-1, 0)


def test_parse_cell_id() -> None:
    assert parse_cell_id("b12") == ("B", 12)
    assert parse_cell_id("$C$3") == ("C", 3)
    assert parse_cell_id("1A") is None
    assert parse_cell_id("A0") is None
    assert parse_cell_id("") is None


def test_split_a1_rejects_invalid() -> None:
    with pytest.raises(ValueError, match="Invalid cell reference"):
        split_a1("1A")


def test_normalize_and_coordinates() -> None:
    assert normalize_cell_id(" aa7 ") == "AA7"
    assert cell_coordinates("C5") == (5, 3)


def test_range_helpers_are_order_independent() -> None:
    assert range_bounds("C3", "A1") == (1, 1, 3, 3)
    assert range_cell_count("A1:C3") == 9
    assert range_cell_count("C3:A1") == 9
    base, rows, cols = parse_range_geometry("D6:B4")
    assert (base, rows, cols) == ("B4", 3, 3)


def test_expand_range_is_row_major() -> None:
    assert expand_range("B2", "A1") == ["A1", "B1", "A2", "B2"]
    assert range_rows("A1", "B2") == [["A1", "B1"], ["A2", "B2"]]


def test_normalize_range_strips_absolute_markers() -> None:
    assert normalize_range("$a$1:b$2") == "A1:B2"
    with pytest.raises(ValueError, match="Invalid range reference"):
        normalize_range("A1-B2")
