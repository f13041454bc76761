"""MCP server exposing an in-memory ExGrid workbook as tools."""

from __future__ import annotations

from .io import PathPolicy

__all__ = ["PathPolicy"]
