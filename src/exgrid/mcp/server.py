from __future__ import annotations

import argparse
import functools
import importlib
import logging
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, cast

import anyio
from pydantic import BaseModel, Field

from exgrid.core.types import DEFAULT_HISTORY_CAPACITY
from exgrid.core.workbook import Workbook
from exgrid.shared.output_path import OnConflictPolicy

from .io import PathPolicy
from .tools import (
    AddSheetToolInput,
    AddSheetToolOutput,
    ExportXlsxToolInput,
    ExportXlsxToolOutput,
    HistoryToolOutput,
    ImportXlsxToolInput,
    ImportXlsxToolOutput,
    MergeToolInput,
    MergeToolOutput,
    ReadRangeToolInput,
    ReadRangeToolOutput,
    SetCellToolInput,
    SetCellToolOutput,
    UnmergeToolInput,
    WorkbookSession,
    adopt_imported_workbook,
    load_import_workbook,
    run_add_sheet_tool,
    run_export_xlsx_tool,
    run_merge_tool,
    run_read_range_tool,
    run_redo_tool,
    run_set_cell_tool,
    run_undo_tool,
    run_unmerge_tool,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from mcp.server.fastmcp import FastMCP

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """Configuration for the MCP server process."""

    root: Path = Field(..., description="Root directory for workbook files.")
    deny_globs: list[str] = Field(default_factory=list, description="Denied glob list.")
    log_level: str = Field(default="INFO", description="Logging level.")
    log_file: Path | None = Field(default=None, description="Optional log file path.")
    on_conflict: OnConflictPolicy = Field(
        default="overwrite", description="Output conflict policy."
    )
    history_capacity: int = Field(
        default=DEFAULT_HISTORY_CAPACITY, ge=1, description="Undo snapshots to keep."
    )


def main(argv: list[str] | None = None) -> int:
    """Run the MCP server entrypoint.

    Args:
        argv: Optional CLI arguments for testing.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    config = _parse_args(argv)
    _configure_logging(config)
    try:
        run_server(config)
    except Exception as exc:  # pragma: no cover - surface runtime errors
        logger.error("MCP server failed: %s", exc)
        return 1
    return 0


def run_server(config: ServerConfig) -> None:
    """Start the MCP server over stdio."""
    _import_mcp()
    policy = PathPolicy(root=config.root, deny_globs=config.deny_globs)
    logger.info("MCP root: %s", policy.normalize_root())
    app = _create_app(
        policy,
        on_conflict=config.on_conflict,
        history_capacity=config.history_capacity,
    )
    app.run()


def _parse_args(argv: list[str] | None) -> ServerConfig:
    parser = argparse.ArgumentParser(description="ExGrid MCP server (stdio).")
    parser.add_argument("--root", type=Path, required=True, help="Workspace root.")
    parser.add_argument(
        "--deny-glob",
        action="append",
        default=[],
        help="Glob pattern to deny (can be specified multiple times).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    parser.add_argument("--log-file", type=Path, help="Optional log file path.")
    parser.add_argument(
        "--on-conflict",
        choices=["overwrite", "skip", "rename"],
        default="overwrite",
        help="Export conflict policy (overwrite/skip/rename).",
    )
    parser.add_argument(
        "--history-capacity",
        type=int,
        default=DEFAULT_HISTORY_CAPACITY,
        help="Number of undo snapshots kept per session.",
    )
    args = parser.parse_args(argv)
    return ServerConfig(
        root=args.root,
        deny_globs=list(args.deny_glob),
        log_level=args.log_level,
        log_file=args.log_file,
        on_conflict=args.on_conflict,
        history_capacity=args.history_capacity,
    )


def _configure_logging(config: ServerConfig) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file is not None:
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(
        level=config.log_level.upper(),
        handlers=handlers,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _import_mcp() -> ModuleType:
    """Import the MCP SDK module or raise a helpful error."""
    try:
        return importlib.import_module("mcp")
    except ModuleNotFoundError as exc:
        raise RuntimeError(
            "MCP SDK is not installed. Install with `pip install exgrid[mcp]`."
        ) from exc


def _create_app(
    policy: PathPolicy,
    *,
    on_conflict: OnConflictPolicy,
    history_capacity: int = DEFAULT_HISTORY_CAPACITY,
) -> FastMCP:
    """Create the FastMCP application bound to a fresh workbook session."""
    from mcp.server.fastmcp import FastMCP

    app = FastMCP("ExGrid MCP", json_response=True)
    session = WorkbookSession(history_capacity=history_capacity)
    _register_tools(app, policy, session=session, default_on_conflict=on_conflict)
    return app


def _register_tools(
    app: FastMCP,
    policy: PathPolicy,
    *,
    session: WorkbookSession,
    default_on_conflict: OnConflictPolicy,
) -> None:
    """Register MCP tools for the server.

    Workbook edits run on the event loop; only file reads and writes are
    moved to a worker thread.
    """

    async def _set_cell_tool(
        cell: str, value: str, sheet: str | None = None
    ) -> SetCellToolOutput:
        """Write a literal or a formula (text starting with '=') into one cell.

        Args:
            cell: Target cell in A1 notation.
            value: Literal text or formula. Empty text clears the cell.
            sheet: Sheet name. Defaults to the active sheet.

        Returns:
            The stored raw text plus the evaluated value and display text.
        """
        payload = SetCellToolInput(cell=cell, value=value, sheet=sheet)
        return run_set_cell_tool(payload, session=session)

    app.tool(name="exgrid_set_cell")(_set_cell_tool)

    async def _read_range_tool(
        range: str,  # noqa: A002  # pylint: disable=redefined-builtin
        sheet: str | None = None,
    ) -> ReadRangeToolOutput:
        """Read values, display text and raw text for an A1 range.

        Args:
            range: A1 range such as 'A1:C10' (a single cell is accepted).
            sheet: Sheet name. Defaults to the active sheet.

        Returns:
            Row-major grids of resolved values, display text and raw text.
        """
        payload = ReadRangeToolInput(range=range, sheet=sheet)
        return run_read_range_tool(payload, session=session)

    app.tool(name="exgrid_read_range")(_read_range_tool)

    async def _merge_tool(
        range: str,  # noqa: A002  # pylint: disable=redefined-builtin
        sheet: str | None = None,
    ) -> MergeToolOutput:
        """Merge a rectangular range; overlapping merges are replaced.

        Args:
            range: A1 range such as 'A1:B2'.
            sheet: Sheet name. Defaults to the active sheet.

        Returns:
            Merged regions of the sheet after the call.
        """
        payload = MergeToolInput(range=range, sheet=sheet)
        return run_merge_tool(payload, session=session)

    app.tool(name="exgrid_merge")(_merge_tool)

    async def _unmerge_tool(cell: str, sheet: str | None = None) -> MergeToolOutput:
        """Remove the merged region containing a cell.

        Args:
            cell: Any cell inside the merged region.
            sheet: Sheet name. Defaults to the active sheet.

        Returns:
            Merged regions of the sheet after the call.
        """
        payload = UnmergeToolInput(cell=cell, sheet=sheet)
        return run_unmerge_tool(payload, session=session)

    app.tool(name="exgrid_unmerge")(_unmerge_tool)

    async def _undo_tool() -> HistoryToolOutput:
        """Undo the last committed change."""
        return run_undo_tool(session)

    app.tool(name="exgrid_undo")(_undo_tool)

    async def _redo_tool() -> HistoryToolOutput:
        """Redo the last undone change."""
        return run_redo_tool(session)

    app.tool(name="exgrid_redo")(_redo_tool)

    async def _add_sheet_tool(name: str | None = None) -> AddSheetToolOutput:
        """Add a sheet and make it active.

        Args:
            name: Sheet name. Defaults to the next free 'SheetN'.

        Returns:
            The new sheet name and all sheet names.
        """
        payload = AddSheetToolInput(name=name)
        return run_add_sheet_tool(payload, session=session)

    app.tool(name="exgrid_add_sheet")(_add_sheet_tool)

    async def _import_xlsx_tool(
        xlsx_path: str, keep_formulas: bool = False
    ) -> ImportXlsxToolOutput:
        """Replace the session workbook with the contents of an .xlsx file.

        Args:
            xlsx_path: Path to the workbook, relative to the server root.
            keep_formulas: Import formula text instead of cached results.

        Returns:
            Imported sheet names and cell count.
        """
        payload = ImportXlsxToolInput(
            xlsx_path=xlsx_path, keep_formulas=keep_formulas
        )
        work = functools.partial(
            load_import_workbook,
            payload,
            policy=policy,
            history_capacity=session.history_capacity,
        )
        workbook = cast(Workbook, await anyio.to_thread.run_sync(work))
        return adopt_imported_workbook(session, workbook)

    app.tool(name="exgrid_import_xlsx")(_import_xlsx_tool)

    async def _export_xlsx_tool(
        out_path: str, on_conflict: OnConflictPolicy | None = None
    ) -> ExportXlsxToolOutput:
        """Write the session workbook to an .xlsx file (formulas as values).

        Args:
            out_path: Output path, relative to the server root.
            on_conflict: 'overwrite', 'skip' or 'rename' when the file exists.
                Defaults to the server --on-conflict setting.

        Returns:
            The written path, or skipped=True when nothing was written.
        """
        payload = ExportXlsxToolInput(out_path=out_path, on_conflict=on_conflict)
        work = functools.partial(
            run_export_xlsx_tool,
            payload,
            session=session,
            policy=policy,
            on_conflict=on_conflict or default_on_conflict,
        )
        return cast(ExportXlsxToolOutput, await anyio.to_thread.run_sync(work))

    app.tool(name="exgrid_export_xlsx")(_export_xlsx_tool)
