from __future__ import annotations

from datetime import datetime
from pathlib import Path
import re
import zipfile

from openpyxl import Workbook as OpenpyxlWorkbook, load_workbook
import pytest

from exgrid.core.workbook import Workbook
from exgrid.io.xlsx import load_workbook_from_xlsx, read_xlsx_cells, write_xlsx


def _source_book(path: Path) -> Path:
    book = OpenpyxlWorkbook()
    sheet = book.active
    sheet.title = "Inputs"
    sheet["A1"] = 3
    sheet["A2"] = "=A1*2"
    sheet["B1"] = datetime(2024, 1, 2)
    sheet["C1"] = "  padded  "
    sheet.merge_cells("D1:E2")
    extra = book.create_sheet("Notes")
    extra["A1"] = "memo"
    book.save(path)
    return path


def _store_cached_result(path: Path, cell: str, formula: str, cached: str) -> None:
    """Add a cached result to a formula cell, as a spreadsheet app saves it."""
    member = "xl/worksheets/sheet1.xml"
    with zipfile.ZipFile(path) as source:
        entries = {name: source.read(name) for name in source.namelist()}
    pattern = re.compile(
        rf'(<c r="{cell}"[^>]*>)<f>{re.escape(formula)}</f>(?:<v\s*/>|<v></v>)?'
    )
    xml, count = pattern.subn(
        rf"\g<1><f>{formula}</f><v>{cached}</v>", entries[member].decode("utf-8")
    )
    assert count == 1
    entries[member] = xml.encode("utf-8")
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as target:
        for name, data in entries.items():
            target.writestr(name, data)


def test_read_xlsx_cells(tmp_path: Path) -> None:
    path = _source_book(tmp_path / "source.xlsx")
    cells = read_xlsx_cells(path, data_only=False)
    assert cells["A1"] == "3"
    assert cells["A2"] == "=A1*2"
    assert cells["B1"] == "45293"
    assert read_xlsx_cells(path, "Notes") == {"A1": "memo"}
    with pytest.raises(ValueError, match="Sheet not found: Missing"):
        read_xlsx_cells(path, "Missing")


def test_import_defaults_to_cached_results(tmp_path: Path) -> None:
    path = _source_book(tmp_path / "source.xlsx")
    _store_cached_result(path, "A2", "A1*2", "7")
    assert read_xlsx_cells(path)["A2"] == "7"
    workbook = load_workbook_from_xlsx(path)
    sheet_id = workbook.sheets[0].id
    assert workbook.get_raw_content(sheet_id, "A2") == "7"
    assert workbook.get_value(sheet_id, "A2") == 7
    with_formulas = load_workbook_from_xlsx(path, data_only=False)
    assert with_formulas.get_raw_content(sheet_id, "A2") == "=A1*2"


def test_formula_without_cached_result_imports_empty(tmp_path: Path) -> None:
    path = _source_book(tmp_path / "source.xlsx")
    cells = read_xlsx_cells(path)
    assert "A2" not in cells
    assert cells["A1"] == "3"


def test_load_workbook_with_formulas_recalculates(tmp_path: Path) -> None:
    workbook = load_workbook_from_xlsx(
        _source_book(tmp_path / "source.xlsx"), data_only=False
    )
    assert [sheet.name for sheet in workbook.sheets] == ["Inputs", "Notes"]
    sheet_id = workbook.sheets[0].id
    assert workbook.get_raw_content(sheet_id, "A2") == "=A1*2"
    assert workbook.get_value(sheet_id, "A2") == 6
    assert workbook.get_raw_content(sheet_id, "C1") == "padded"
    assert [region.ref for region in workbook.sheets[0].merged_regions] == ["D1:E2"]
    assert len(workbook.history) == 1


def test_write_and_reload_roundtrip(tmp_path: Path) -> None:
    workbook = Workbook()
    sheet_id = workbook.active_sheet_id
    workbook.set_cell_raw(sheet_id, "A1", "2")
    workbook.set_cell_raw(sheet_id, "A2", "=A1*5")
    workbook.set_cell_raw(sheet_id, "B1", "hello")
    workbook.merge_selection(sheet_id, "C1:D2")
    workbook.apply_format(sheet_id, "A1", bold=True, number_format="0.00")
    workbook.apply_format(
        sheet_id, "B1", background_color="#ff0000", text_align="center"
    )
    workbook.set_column_width(sheet_id, "B", 140)
    workbook.set_row_height(sheet_id, 2, 40)
    data = workbook.add_sheet("Data")
    workbook.set_cell_raw(data.id, "A1", "x")

    path = write_xlsx(workbook, tmp_path / "out.xlsx")
    assert path == tmp_path / "out.xlsx"

    raw = load_workbook(path)
    try:
        assert raw["Sheet1"]["A2"].value == 10
        assert raw["Sheet1"]["B1"].fill.start_color.rgb == "FFFF0000"
    finally:
        raw.close()

    loaded = load_workbook_from_xlsx(path)
    first = loaded.sheets[0].id
    assert [sheet.name for sheet in loaded.sheets] == ["Sheet1", "Data"]
    assert loaded.get_value(first, "A2") == 10
    assert loaded.get_display_value(first, "A1") == "2.00"
    assert loaded.get_format(first, "A1").bold is True
    assert loaded.get_format(first, "B1").text_align == "center"
    assert [region.ref for region in loaded.sheets[0].merged_regions] == ["C1:D2"]
    assert loaded.column_width(first, "B") == 140.0
    assert loaded.row_height(first, 2) == 40.0
    assert loaded.get_value(loaded.sheets[1].id, "A1") == "x"


def test_write_respects_conflict_policy(tmp_path: Path) -> None:
    workbook = Workbook()
    target = tmp_path / "out.xlsx"
    write_xlsx(workbook, target)
    assert write_xlsx(workbook, target, on_conflict="skip") is None
    renamed = write_xlsx(workbook, target, on_conflict="rename")
    assert renamed == tmp_path / "out_1.xlsx"
    assert renamed.exists()


def test_text_results_that_look_like_formulas_stay_text(tmp_path: Path) -> None:
    workbook = Workbook()
    sheet_id = workbook.active_sheet_id
    workbook.set_cell_raw(sheet_id, "A1", '="=1+1"')
    assert workbook.get_value(sheet_id, "A1") == "=1+1"
    path = write_xlsx(workbook, tmp_path / "out.xlsx")
    assert path is not None

    raw = load_workbook(path)
    try:
        cell = raw["Sheet1"]["A1"]
        assert cell.data_type == "s"
        assert cell.value == "=1+1"
    finally:
        raw.close()
