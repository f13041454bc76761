from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from exgrid.shared.a1 import column_index_to_label, range_bounds

from .types import CellValue, TextAlign


class CellContent(BaseModel):
    """Raw cell text plus the cached result when the text is a formula."""

    model_config = ConfigDict(frozen=True)

    raw: str = Field(..., description="Editable source text; formulas start with '='.")
    cached: CellValue = Field(
        default=None, description="Last evaluation result (formulas only)."
    )

    @property
    def is_formula(self) -> bool:
        return self.raw.startswith("=")


class CellFormat(BaseModel):
    """Per-cell presentation metadata; unset fields fall back to defaults."""

    model_config = ConfigDict(frozen=True)

    bold: bool | None = None
    italic: bool | None = None
    underline: bool | None = None
    font_size: float | None = Field(default=None, gt=0)
    font_color: str | None = None
    background_color: str | None = None
    text_align: TextAlign | None = None
    number_format: str | None = None

    def merged(self, **fields: object) -> CellFormat:
        """Return a copy with the given fields overriding this format.

        Raises:
            pydantic.ValidationError: If a field name or value is invalid.
        """
        payload = self.model_dump(exclude_none=True)
        payload.update(fields)
        return CellFormat.model_validate(payload)


class CellRange(BaseModel):
    """Rectangular selection between two corner cells (any order)."""

    model_config = ConfigDict(frozen=True)

    start: str
    end: str

    @property
    def ref(self) -> str:
        return f"{self.start}:{self.end}"


class MergeRect(BaseModel):
    """Merged region; anchor_cell is the top-left, end_cell the bottom-right."""

    model_config = ConfigDict(frozen=True)

    anchor_cell: str
    end_cell: str
    row_span: int = Field(..., ge=1)
    col_span: int = Field(..., ge=1)

    @classmethod
    def from_corners(cls, start: str, end: str) -> MergeRect:
        """Build a region from two corners given in any order."""
        min_row, min_col, max_row, max_col = range_bounds(start, end)
        return cls(
            anchor_cell=f"{column_index_to_label(min_col)}{min_row}",
            end_cell=f"{column_index_to_label(max_col)}{max_row}",
            row_span=max_row - min_row + 1,
            col_span=max_col - min_col + 1,
        )

    @property
    def ref(self) -> str:
        return f"{self.anchor_cell}:{self.end_cell}"

    def bounds(self) -> tuple[int, int, int, int]:
        """Return 1-based (min_row, min_col, max_row, max_col)."""
        return range_bounds(self.anchor_cell, self.end_cell)

    def contains(self, row: int, col: int) -> bool:
        min_row, min_col, max_row, max_col = self.bounds()
        return min_row <= row <= max_row and min_col <= col <= max_col

    def overlaps(self, other: MergeRect) -> bool:
        """Both the row interval and the column interval intersect."""
        top, left, bottom, right = self.bounds()
        o_top, o_left, o_bottom, o_right = other.bounds()
        rows = top <= o_bottom and o_top <= bottom
        return rows and left <= o_right and o_left <= right

    def covers(self, other: MergeRect) -> bool:
        top, left, bottom, right = self.bounds()
        o_top, o_left, o_bottom, o_right = other.bounds()
        rows = top <= o_top and o_bottom <= bottom
        return rows and left <= o_left and o_right <= right


class Sheet(BaseModel):
    """One sheet of a workbook. Treated as an immutable value."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    cells: dict[str, CellContent] = Field(default_factory=dict)
    formats: dict[str, CellFormat] = Field(default_factory=dict)
    merged_regions: list[MergeRect] = Field(default_factory=list)
    column_widths: dict[str, float] = Field(default_factory=dict)
    row_heights: dict[int, float] = Field(default_factory=dict)


class SelectionState(BaseModel):
    """Transient UI state: active cell, range, and the in-progress edit."""

    model_config = ConfigDict(frozen=True)

    active_cell: str | None = None
    range: CellRange | None = None  # noqa: A003
    editing_cell: str | None = None
    draft_text: str = ""
    selecting: bool = False
    drag_origin: str | None = None

    @property
    def is_editing(self) -> bool:
        return self.editing_cell is not None


def raw_text(entry: object) -> str | None:
    """Return the source text of a cell-store entry, or None when blank.

    Accepts CellContent values as well as plain strings and numbers so that
    evaluation can run over ad-hoc mappings.
    """
    if entry is None:
        return None
    if isinstance(entry, CellContent):
        text = entry.raw
    elif isinstance(entry, bool):
        text = "TRUE" if entry else "FALSE"
    elif isinstance(entry, (int, float)):
        text = repr(entry)
    else:
        text = str(entry)
    return text if text != "" else None
