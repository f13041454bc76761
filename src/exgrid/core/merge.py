from __future__ import annotations

from exgrid.shared.a1 import cell_coordinates, column_index_to_label, parse_cell_id

from .models import MergeRect, Sheet
from .types import DEFAULT_COLUMN_WIDTH, DEFAULT_ROW_HEIGHT


def merge_range(sheet: Sheet, start: str, end: str) -> Sheet:
    """Merge the rectangle spanned by two corner cells.

    Regions overlapping the new rectangle are removed before it is inserted.
    A request that lies entirely inside an existing region, or that names a
    malformed cell id, leaves the sheet unchanged (the same object is
    returned, so callers can skip the history commit).

    Args:
        sheet: Sheet to update.
        start: One corner in A1 notation.
        end: The opposite corner, in any order relative to ``start``.

    Returns:
        The updated sheet, or ``sheet`` itself when nothing changed.
    """
    if parse_cell_id(start) is None or parse_cell_id(end) is None:
        return sheet
    rect = MergeRect.from_corners(start, end)
    if any(region.covers(rect) for region in sheet.merged_regions):
        return sheet
    kept = [region for region in sheet.merged_regions if not region.overlaps(rect)]
    kept.append(rect)
    return sheet.model_copy(update={"merged_regions": kept})


def unmerge(sheet: Sheet, cell_id: str) -> Sheet:
    """Remove the region containing `cell_id`; no-op when there is none."""
    region = find_region(sheet, cell_id)
    if region is None:
        return sheet
    kept = [item for item in sheet.merged_regions if item != region]
    return sheet.model_copy(update={"merged_regions": kept})


def find_region(sheet: Sheet, cell_id: str) -> MergeRect | None:
    if parse_cell_id(cell_id) is None:
        return None
    row, col = cell_coordinates(cell_id)
    for region in sheet.merged_regions:
        if region.contains(row, col):
            return region
    return None


def resolve_anchor(sheet: Sheet, cell_id: str) -> str:
    """Redirect a member of a merged region to its anchor cell."""
    region = find_region(sheet, cell_id)
    return region.anchor_cell if region is not None else cell_id


def cell_span(sheet: Sheet, cell_id: str) -> tuple[int, int] | None:
    """Return (row_span, col_span) to render; None for absorbed cells."""
    region = find_region(sheet, cell_id)
    if region is None:
        return (1, 1)
    if region.anchor_cell != cell_id:
        return None
    return (region.row_span, region.col_span)


def render_size(sheet: Sheet, cell_id: str) -> tuple[float, float] | None:
    """Return the (width, height) a cell occupies, summing merged tracks."""
    span = cell_span(sheet, cell_id)
    if span is None:
        return None
    row_span, col_span = span
    row, col = cell_coordinates(cell_id)
    width = sum(
        sheet.column_widths.get(column_index_to_label(index), DEFAULT_COLUMN_WIDTH)
        for index in range(col, col + col_span)
    )
    height = sum(
        sheet.row_heights.get(index, DEFAULT_ROW_HEIGHT)
        for index in range(row, row + row_span)
    )
    return width, height
