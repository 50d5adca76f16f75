"""Record model for the disruption feed.

Each disruption event is expressed twice: :class:`RawRecord` holds every
value inline, exactly as decoded from the feed, while
:class:`InternedRecord` replaces every text field with an integer handle
into a field-specific interner and keeps only the timestamps inline. The
split between interned and inline members is fixed here rather than
discovered at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from src.intern.errors import MissingFieldError

__all__ = [
    "Handle",
    "RawRecord",
    "InternedRecord",
    "INTERNED_FIELDS",
    "TIMESTAMP_FIELDS",
    "OPTIONAL_FIELDS",
]

Handle = int

# Text fields repeated across records: categorical values, and per-disruption
# values copied into every (line, period) row and every snapshot.
INTERNED_FIELDS = ("disruption_id", "line_id", "mode", "cause", "severity", "title", "message")
TIMESTAMP_FIELDS = ("begin", "end", "last_update")
OPTIONAL_FIELDS = frozenset({"message"})


def _check_required(record: object, names: tuple[str, ...], kind: type) -> None:
    for name in names:
        value = getattr(record, name)
        if value is None:
            if name in OPTIONAL_FIELDS:
                continue
            raise MissingFieldError(name)
        if not isinstance(value, kind):
            raise TypeError(f"{name} must be {kind.__name__}, got {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class RawRecord:
    """One disruption event with every value stored inline.

    Attributes
    ----------
    disruption_id:
        Identifier of the disruption (UUID string).
    line_id:
        Identifier of the impacted line.
    mode:
        Transport mode of the line (``Metro``, ``RapidTransit``...).
    cause:
        Disruption category, e.g. ``PERTURBATION`` or ``TRAVAUX``.
    severity:
        Effect tag such as ``BLOQUANTE``.
    title:
        Headline of the disruption; usually templated.
    message:
        Free-form body, if the feed provides one.
    begin, end:
        Validity interval of the application period.
    last_update:
        Time the disruption was last modified upstream.
    """

    disruption_id: str
    line_id: str
    mode: str
    cause: str
    severity: str
    title: str
    message: Optional[str]
    begin: datetime
    end: datetime
    last_update: datetime

    def __post_init__(self) -> None:
        _check_required(self, INTERNED_FIELDS, str)
        _check_required(self, TIMESTAMP_FIELDS, datetime)


@dataclass(frozen=True, slots=True)
class InternedRecord:
    """Disruption event with text fields replaced by handles.

    Handles are only meaningful together with the interners that issued
    them; the two are always passed around as a pair. An absent message
    has no handle and stays ``None``.
    """

    disruption_id: Handle
    line_id: Handle
    mode: Handle
    cause: Handle
    severity: Handle
    title: Handle
    message: Optional[Handle]
    begin: datetime
    end: datetime
    last_update: datetime

    def __post_init__(self) -> None:
        for name in INTERNED_FIELDS:
            value = getattr(self, name)
            if value is None:
                if name in OPTIONAL_FIELDS:
                    continue
                raise MissingFieldError(name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise TypeError(f"{name} must be a non-negative int handle, got {value!r}")
        _check_required(self, TIMESTAMP_FIELDS, datetime)
