"""Append-only deduplicating value store.

An :class:`Interner` maps each distinct value to a small integer handle.
Handles are assigned densely from zero in first-seen order and are never
reused or renumbered, so ``interner.resolve(interner.intern(v)) == v``
holds for the lifetime of the instance.
"""

from __future__ import annotations

import operator
from typing import Dict, Generic, Hashable, Iterable, Iterator, List, Optional, Tuple, TypeVar

from .errors import HandleOutOfRange, HandleWidthOverflow, MissingFieldError

__all__ = ["Interner"]

T = TypeVar("T", bound=Hashable)


class Interner(Generic[T]):
    """Dictionary of distinct values plus a reverse index.

    Parameters
    ----------
    max_size:
        Optional upper bound on the number of distinct values. Interning a
        new value past this bound raises :class:`HandleWidthOverflow`
        instead of issuing a handle that would not fit its storage width.
    """

    __slots__ = ("_values", "_index", "_max_size", "references")

    def __init__(self, max_size: Optional[int] = None) -> None:
        if max_size is not None and max_size < 0:
            raise ValueError("max_size must be non-negative")
        self._values: List[T] = []
        self._index: Dict[T, int] = {}
        self._max_size = max_size
        # Number of successful intern() calls, including repeats.
        self.references = 0

    @classmethod
    def from_values(cls, values: Iterable[T], max_size: Optional[int] = None) -> "Interner[T]":
        """Rebuild an interner from a dictionary persisted in handle order."""
        interner: Interner[T] = cls(max_size=max_size)
        for value in values:
            if value in interner._index:
                raise ValueError(f"duplicate dictionary value {value!r}")
            interner._append(value)
        return interner

    @property
    def max_size(self) -> Optional[int]:
        return self._max_size

    @property
    def values(self) -> Tuple[T, ...]:
        return tuple(self._values)

    def intern(self, value: T) -> int:
        """Return the handle for *value*, appending it if unseen."""
        if value is None:
            raise MissingFieldError("value")
        handle = self._index.get(value)
        if handle is None:
            handle = self._append(value)
        self.references += 1
        return handle

    def _append(self, value: T) -> int:
        if self._max_size is not None and len(self._values) >= self._max_size:
            raise HandleWidthOverflow(
                f"cannot intern {value!r}: interner is limited to {self._max_size} distinct values"
            )
        handle = len(self._values)
        self._values.append(value)
        self._index[value] = handle
        return handle

    def resolve(self, handle: int) -> T:
        """Return the value interned under *handle*."""
        handle = operator.index(handle)
        if not 0 <= handle < len(self._values):
            raise HandleOutOfRange(handle, len(self._values))
        return self._values[handle]

    def lookup(self, value: T) -> Optional[int]:
        """Return the existing handle for *value* without interning it."""
        return self._index.get(value)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[T]:
        return iter(self._values)

    def __contains__(self, value: object) -> bool:
        try:
            return value in self._index
        except TypeError:
            return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Interner):
            return NotImplemented
        return self._values == other._values

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Interner(len={len(self._values)}, references={self.references})"
