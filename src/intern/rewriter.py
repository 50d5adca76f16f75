"""Rewrite raw disruption records into their interned form.

The rewriter walks the records once, in order, and replaces every text
field with the handle returned by that field's own interner. An absent
message stays ``None`` and is not interned. Timestamps are copied
unchanged. Growing the supplied interners is the only side effect.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Iterable, Iterator, List, Optional, Tuple

from src.data.schemas import INTERNED_FIELDS, InternedRecord, RawRecord

from .interner import Interner

__all__ = ["DisruptionInterners", "iter_rewrite", "rewrite", "width_capacity"]


def width_capacity(width: int) -> int:
    """Largest number of distinct values a *width*-byte handle may address.

    The all-ones value of each width is kept free to mark an absent
    optional value, so a 16-bit handle covers at most 65535 values.
    """
    return (1 << (8 * width)) - 1


@dataclass
class DisruptionInterners:
    """One interner per interned field; never shared between fields."""

    disruption_id: Interner[str] = field(default_factory=Interner)
    line_id: Interner[str] = field(default_factory=Interner)
    mode: Interner[str] = field(default_factory=Interner)
    cause: Interner[str] = field(default_factory=Interner)
    severity: Interner[str] = field(default_factory=Interner)
    title: Interner[str] = field(default_factory=Interner)
    message: Interner[str] = field(default_factory=Interner)

    @classmethod
    def for_handle_width(cls, width: Optional[int]) -> "DisruptionInterners":
        """Build empty interners that refuse to outgrow *width*-byte handles."""
        if width is None:
            return cls()
        cap = width_capacity(width)
        return cls(**{name: Interner(max_size=cap) for name in INTERNED_FIELDS})

    def for_field(self, name: str) -> Interner[str]:
        if name not in INTERNED_FIELDS:
            raise KeyError(f"{name!r} is not an interned field")
        return getattr(self, name)

    def items(self) -> Iterator[Tuple[str, Interner[str]]]:
        for f in fields(self):
            yield f.name, getattr(self, f.name)

    def max_len(self) -> int:
        return max((len(i) for _, i in self.items()), default=0)


def _rewrite_one(record: RawRecord, interners: DisruptionInterners) -> InternedRecord:
    if not isinstance(record, RawRecord):
        raise TypeError(f"expected RawRecord, got {type(record).__name__}")
    return InternedRecord(
        disruption_id=interners.disruption_id.intern(record.disruption_id),
        line_id=interners.line_id.intern(record.line_id),
        mode=interners.mode.intern(record.mode),
        cause=interners.cause.intern(record.cause),
        severity=interners.severity.intern(record.severity),
        title=interners.title.intern(record.title),
        message=None if record.message is None else interners.message.intern(record.message),
        begin=record.begin,
        end=record.end,
        last_update=record.last_update,
    )


def iter_rewrite(
    records: Iterable[RawRecord], interners: DisruptionInterners
) -> Iterator[InternedRecord]:
    """Lazily rewrite *records*; suitable for streamed input."""
    for record in records:
        yield _rewrite_one(record, interners)


def rewrite(records: Iterable[RawRecord], interners: DisruptionInterners) -> List[InternedRecord]:
    """Rewrite *records* into interned form, preserving order and length."""
    return list(iter_rewrite(records, interners))
