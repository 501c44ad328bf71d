"""
Error kinds raised by the folding core.

InputError is fatal and raised before any computation. NumericalInstabilityError
aborts one candidate; the pipeline keeps the others. ExternalResourceError is
recovered by falling back to the builtin fragment library (run marked degraded).
ConvergenceWarning goes through the warnings module and into diagnostics.

MIT License. Python 3.10+.
"""

from __future__ import annotations

from typing import Optional


class FoldError(Exception):
    """Base class for backbone_fold errors."""


class InputError(FoldError, ValueError):
    """Malformed or mismatched input. `field` names the offending input."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def __str__(self) -> str:
        msg = super().__str__()
        if self.field:
            return f"{self.field}: {msg}"
        return msg


class NumericalInstabilityError(FoldError, ArithmeticError):
    """An energy term or gradient came out non-finite for finite input."""

    def __init__(self, message: str, term: Optional[str] = None):
        super().__init__(message)
        self.term = term


class ExternalResourceError(FoldError):
    """Fragment library fetch failed or timed out."""


class ConvergenceWarning(UserWarning):
    """Optimizer stage exhausted its budget before meeting tolerance."""
