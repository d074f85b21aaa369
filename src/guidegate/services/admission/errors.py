"""Exceptions raised by the admission core."""
from __future__ import annotations

from typing import Sequence

__all__ = ["InvalidInputError", "StoreUnavailableError"]


class InvalidInputError(ValueError):
    """Raised when a request is missing required fields or is malformed."""

    def __init__(self, message: str, *, fields: Sequence[str] = (), code: str = "invalid_input") -> None:
        super().__init__(message)
        self.fields = list(fields)
        self.code = code


class StoreUnavailableError(RuntimeError):
    """Raised when the binding store cannot be read or written."""
