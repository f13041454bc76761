"""Formula tokenizer, parser, evaluator, function library and display formats."""

from __future__ import annotations

from .errors import (
    CircularReferenceError,
    FormulaError,
    FormulaSyntaxError,
    LookupMissError,
)
from .evaluator import Evaluator, evaluate
from .format import format_cell
from .functions import FUNCTIONS
from .graph import DependencyGraph, formula_references
from .parser import parse_formula

__all__ = [
    "FUNCTIONS",
    "CircularReferenceError",
    "DependencyGraph",
    "Evaluator",
    "FormulaError",
    "FormulaSyntaxError",
    "LookupMissError",
    "evaluate",
    "format_cell",
    "formula_references",
    "parse_formula",
]
