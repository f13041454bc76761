from __future__ import annotations

from exgrid.core.types import ERROR_TOKEN, NA_TOKEN, REF_TOKEN


class FormulaError(ValueError):
    """Evaluation failure carrying the token shown in the cell."""

    code: str = ERROR_TOKEN

    def __init__(self, message: str = "", code: str | None = None) -> None:
        super().__init__(message or self.code)
        if code is not None:
            self.code = code


class FormulaSyntaxError(FormulaError):
    """Raised when a formula cannot be tokenized or parsed."""


class CircularReferenceError(FormulaError):
    """Raised when a reference resolves back into the cell being evaluated."""

    code: str = REF_TOKEN


class LookupMissError(FormulaError):
    """Raised when a lookup finds no matching key."""

    code: str = NA_TOKEN
