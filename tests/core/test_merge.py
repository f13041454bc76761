from __future__ import annotations

from exgrid.core.merge import (
    cell_span,
    find_region,
    merge_range,
    render_size,
    resolve_anchor,
    unmerge,
)
from exgrid.core.models import MergeRect, Sheet


def _sheet() -> Sheet:
    return Sheet(id="sheet-1", name="Sheet1")


def test_merge_normalizes_corners() -> None:
    sheet = merge_range(_sheet(), "C3", "A1")
    assert sheet.merged_regions == [
        MergeRect(anchor_cell="A1", end_cell="C3", row_span=3, col_span=3)
    ]


def test_overlapping_merge_replaces_existing_regions() -> None:
    sheet = merge_range(_sheet(), "A1", "B2")
    sheet = merge_range(sheet, "D1", "E1")
    sheet = merge_range(sheet, "B2", "C3")
    assert [region.ref for region in sheet.merged_regions] == ["D1:E1", "B2:C3"]


def test_regions_never_overlap() -> None:
    sheet = _sheet()
    corners = [("A1", "C3"), ("B2", "D4"), ("D1", "D9"), ("A5", "E6"), ("C3", "C3")]
    for start, end in corners:
        sheet = merge_range(sheet, start, end)
    regions = sheet.merged_regions
    for index, region in enumerate(regions):
        for other in regions[index + 1 :]:
            assert not region.overlaps(other)


def test_merge_inside_existing_region_is_noop() -> None:
    sheet = merge_range(_sheet(), "A1", "C3")
    assert merge_range(sheet, "B2", "C3") is sheet


def test_merge_with_malformed_ids_is_noop() -> None:
    sheet = _sheet()
    assert merge_range(sheet, "A0", "B2") is sheet
    assert merge_range(sheet, "A1", "??") is sheet


def test_single_cell_merge_is_stored() -> None:
    sheet = merge_range(_sheet(), "B2", "B2")
    assert sheet.merged_regions[0].ref == "B2:B2"
    assert cell_span(sheet, "B2") == (1, 1)


def test_find_and_resolve_anchor() -> None:
    sheet = merge_range(_sheet(), "B2", "C4")
    assert find_region(sheet, "C3") is not None
    assert find_region(sheet, "D3") is None
    assert find_region(sheet, "bad") is None
    assert resolve_anchor(sheet, "C4") == "B2"
    assert resolve_anchor(sheet, "A1") == "A1"


def test_unmerge() -> None:
    sheet = merge_range(_sheet(), "A1", "B2")
    assert unmerge(sheet, "B2").merged_regions == []
    assert unmerge(sheet, "C3") is sheet


def test_cell_span_and_render_size() -> None:
    sheet = merge_range(_sheet(), "A1", "B3")
    sheet = sheet.model_copy(
        update={"column_widths": {"B": 50.0}, "row_heights": {2: 30.0}}
    )
    assert cell_span(sheet, "A1") == (3, 2)
    assert cell_span(sheet, "B2") is None
    assert cell_span(sheet, "C1") == (1, 1)
    assert render_size(sheet, "A1") == (96.0 + 50.0, 24.0 + 30.0 + 24.0)
    assert render_size(sheet, "A2") is None
    assert render_size(sheet, "C1") == (96.0, 24.0)


def test_contained_and_disjoint_merges() -> None:
    sheet = merge_range(_sheet(), "A1", "B2")
    sheet = merge_range(sheet, "A1", "A1")
    sheet = merge_range(sheet, "C1", "C1")
    assert [region.ref for region in sheet.merged_regions] == ["A1:B2", "C1:C1"]
    sheet = merge_range(sheet, "B2", "B3")
    assert [region.ref for region in sheet.merged_regions] == ["C1:C1", "B2:B3"]
