"""Footprint accounting for raw and interned disruption records.

The numbers produced here follow a simple layout model rather than
Python object sizes:

* text fields cost their UTF-8 length plus ``text_overhead`` bytes per
  slot (an absent optional text costs only the overhead);
* timestamp fields cost ``timestamp_width`` bytes each;
* the interned form stores one fixed-width handle per interned field per
  record (an absent message takes a reserved handle value in its slot),
  each distinct dictionary value exactly once, and the timestamps inline
  exactly as the raw form does.

The assumptions live in :class:`SizeModel` so they can be stated and
changed explicitly; the headline ratio is sensitive to them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

import pandas as pd

from src.data.schemas import (
    INTERNED_FIELDS,
    TIMESTAMP_FIELDS,
    InternedRecord,
    RawRecord,
)

from .errors import HandleWidthOverflow
from .rewriter import DisruptionInterners, width_capacity

__all__ = [
    "HANDLE_WIDTHS",
    "RATIO_DECIMALS",
    "SizeModel",
    "SizeReport",
    "select_handle_width",
    "value_bytes",
    "raw_size",
    "interned_size",
    "compression_ratio",
    "size_report",
    "field_summary",
]

HANDLE_WIDTHS = (1, 2, 4, 8)
RATIO_DECIMALS = 2


@dataclass(frozen=True)
class SizeModel:
    """Fixed-width assumptions used by the accounting.

    Attributes
    ----------
    timestamp_width:
        Bytes per timestamp field (8 models an int64 epoch).
    text_overhead:
        Extra bytes per text slot, e.g. a length prefix. ``0`` counts only
        the UTF-8 payload.
    handle_width:
        Fixed handle width in bytes, or ``None`` to pick the smallest width
        that fits the largest dictionary.
    """

    timestamp_width: int = 8
    text_overhead: int = 0
    handle_width: Optional[int] = None

    def __post_init__(self) -> None:
        if self.timestamp_width <= 0:
            raise ValueError("timestamp_width must be positive")
        if self.text_overhead < 0:
            raise ValueError("text_overhead must be non-negative")
        if self.handle_width is not None and self.handle_width not in HANDLE_WIDTHS:
            raise ValueError(f"handle_width must be one of {HANDLE_WIDTHS}")

    @classmethod
    def from_env(cls) -> "SizeModel":
        """Read overrides from ``INTERN_*`` environment variables."""
        hw = os.getenv("INTERN_HANDLE_WIDTH")
        return cls(
            timestamp_width=int(os.getenv("INTERN_TIMESTAMP_WIDTH", "8")),
            text_overhead=int(os.getenv("INTERN_TEXT_OVERHEAD", "0")),
            handle_width=int(hw) if hw else None,
        )

    def resolve_handle_width(self, max_len: int) -> int:
        if self.handle_width is None:
            return select_handle_width(max_len)
        if max_len > width_capacity(self.handle_width):
            raise HandleWidthOverflow(
                f"{max_len} distinct values do not fit {self.handle_width}-byte handles"
            )
        return self.handle_width


@dataclass(frozen=True)
class SizeReport:
    records: int
    raw_bytes: int
    interned_bytes: int
    handle_bytes: int
    dictionary_bytes: int
    inline_bytes: int
    handle_width: int
    ratio: float

    @property
    def ratio_text(self) -> str:
        return f"{self.ratio:.{RATIO_DECIMALS}f}x"


def select_handle_width(max_len: int) -> int:
    """Smallest width in :data:`HANDLE_WIDTHS` able to address *max_len* values."""
    if max_len < 0:
        raise ValueError("max_len must be non-negative")
    for width in HANDLE_WIDTHS:
        if max_len <= width_capacity(width):
            return width
    raise HandleWidthOverflow(f"{max_len} distinct values exceed every supported handle width")


def value_bytes(value: object, model: SizeModel) -> int:
    """Footprint of a single stored value under *model*."""
    if value is None:
        return model.text_overhead
    if isinstance(value, str):
        return len(value.encode("utf-8")) + model.text_overhead
    if isinstance(value, bytes):
        return len(value) + model.text_overhead
    if isinstance(value, datetime):
        return model.timestamp_width
    raise TypeError(f"no size rule for {type(value).__name__}")


def _inline_bytes(model: SizeModel) -> int:
    return model.timestamp_width * len(TIMESTAMP_FIELDS)


def raw_size(records: Iterable[RawRecord], model: Optional[SizeModel] = None) -> int:
    """Bytes needed to store every field of every record inline."""
    model = model or SizeModel()
    total = 0
    for record in records:
        total += _inline_bytes(model)
        total += sum(value_bytes(getattr(record, name), model) for name in INTERNED_FIELDS)
    return total


def _dictionary_bytes(interners: DisruptionInterners, model: SizeModel) -> int:
    return sum(value_bytes(v, model) for _, interner in interners.items() for v in interner)


def _interned_parts(
    records: Sequence[InternedRecord], interners: DisruptionInterners, model: SizeModel
) -> tuple[int, int, int, int]:
    width = model.resolve_handle_width(interners.max_len())
    handle_bytes = len(records) * len(INTERNED_FIELDS) * width
    inline = len(records) * _inline_bytes(model)
    return handle_bytes, _dictionary_bytes(interners, model), inline, width


def interned_size(
    records: Sequence[InternedRecord],
    interners: DisruptionInterners,
    model: Optional[SizeModel] = None,
) -> int:
    """Bytes for handle arrays, dictionaries and inline timestamps."""
    handle_bytes, dict_bytes, inline, _ = _interned_parts(records, interners, model or SizeModel())
    return handle_bytes + dict_bytes + inline


def _ratio(raw_bytes: int, interned_bytes: int) -> float:
    # Empty input reports 1.0 rather than an undefined ratio.
    if interned_bytes == 0:
        return 1.0
    return raw_bytes / interned_bytes


def compression_ratio(
    records: Sequence[RawRecord],
    interned: Sequence[InternedRecord],
    interners: DisruptionInterners,
    model: Optional[SizeModel] = None,
) -> float:
    """``raw_size / interned_size`` for the same dataset."""
    model = model or SizeModel()
    return _ratio(raw_size(records, model), interned_size(interned, interners, model))


def size_report(
    records: Sequence[RawRecord],
    interned: Sequence[InternedRecord],
    interners: DisruptionInterners,
    model: Optional[SizeModel] = None,
) -> SizeReport:
    model = model or SizeModel()
    if len(records) != len(interned):
        raise ValueError("raw and interned sequences must have the same length")
    raw_bytes = raw_size(records, model)
    handle_bytes, dict_bytes, inline, width = _interned_parts(interned, interners, model)
    interned_bytes = handle_bytes + dict_bytes + inline
    return SizeReport(
        records=len(records),
        raw_bytes=raw_bytes,
        interned_bytes=interned_bytes,
        handle_bytes=handle_bytes,
        dictionary_bytes=dict_bytes,
        inline_bytes=inline,
        handle_width=width,
        ratio=_ratio(raw_bytes, interned_bytes),
    )


def field_summary(interners: DisruptionInterners, model: Optional[SizeModel] = None) -> pd.DataFrame:
    """Per-field dictionary statistics as a DataFrame.

    Columns are ``field``, ``distinct``, ``references``,
    ``dictionary_bytes`` and ``refs_per_value``.
    """
    model = model or SizeModel()
    rows = []
    for name, interner in interners.items():
        distinct = len(interner)
        rows.append(
            {
                "field": name,
                "distinct": distinct,
                "references": interner.references,
                "dictionary_bytes": sum(value_bytes(v, model) for v in interner),
                "refs_per_value": interner.references / distinct if distinct else 0.0,
            }
        )
    return pd.DataFrame(rows, columns=["field", "distinct", "references", "dictionary_bytes", "refs_per_value"])
