from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class PathPolicy(BaseModel):
    """Filesystem sandbox for workbook files read or written by MCP tools."""

    root: Path = Field(..., description="Directory all tool paths must stay under.")
    deny_globs: list[str] = Field(
        default_factory=list, description="Glob patterns that are never accessible."
    )

    def normalize_root(self) -> Path:
        return self.root.resolve()

    def ensure_allowed(self, path: Path) -> Path:
        """Resolve a tool path against the root and enforce the sandbox.

        Args:
            path: Absolute path, or a path relative to the root.

        Returns:
            Resolved path if allowed.

        Raises:
            ValueError: If the path escapes the root or matches a deny glob.
        """
        root = self.normalize_root()
        resolved = self._resolve_from_root(path, root)
        if resolved != root and root not in resolved.parents:
            raise ValueError(
                f"Path escapes the workbook root: {resolved} (root={root}). "
                "Pass a path relative to the root, e.g. 'books/budget.xlsx'."
            )
        if self._is_denied(resolved, root):
            raise ValueError(f"Path is denied by policy: {resolved}")
        return resolved

    def ensure_existing_file(self, path: Path) -> Path:
        """Like `ensure_allowed`, but the path must also be an existing file.

        Raises:
            ValueError: If the path is outside the sandbox.
            FileNotFoundError: If no file exists at the resolved path.
        """
        resolved = self.ensure_allowed(path)
        if not resolved.is_file():
            raise FileNotFoundError(f"Workbook file not found: {resolved}")
        return resolved

    def _resolve_from_root(self, path: Path, root: Path) -> Path:
        candidate = path if path.is_absolute() else root / path
        return candidate.resolve()

    def _is_denied(self, path: Path, root: Path) -> bool:
        try:
            relative = path.relative_to(root)
        except ValueError:
            return True
        return any(
            relative.match(pattern) or path.match(pattern)
            for pattern in self.deny_globs
        )


def resolve_output_path(
    out_path: Path,
    *,
    policy: PathPolicy | None,
    default_suffix: str = ".xlsx",
) -> Path:
    """Validate an export path and append the default suffix when missing."""
    candidate = out_path if out_path.suffix else out_path.with_suffix(default_suffix)
    if policy is not None:
        return policy.ensure_allowed(candidate)
    return candidate.resolve()
