"""Exception types raised by the interning engine."""

from __future__ import annotations

__all__ = [
    "InterningError",
    "MissingFieldError",
    "HandleOutOfRange",
    "HandleWidthOverflow",
    "RoundTripMismatch",
]


class InterningError(Exception):
    """Base class for interning failures."""


class MissingFieldError(InterningError, ValueError):
    """A required record field is ``None`` or absent."""

    def __init__(self, field: str) -> None:
        super().__init__(f"required field {field!r} is missing")
        self.field = field


class HandleOutOfRange(InterningError, IndexError):
    """``resolve`` was called with a handle the interner never issued."""

    def __init__(self, handle: int, size: int) -> None:
        super().__init__(f"handle {handle} out of range for interner of size {size}")
        self.handle = handle
        self.size = size


class HandleWidthOverflow(InterningError, OverflowError):
    """The handle width cannot represent the number of distinct values."""


class RoundTripMismatch(InterningError):
    """A reconstructed record differs from its original."""
