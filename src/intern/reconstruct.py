"""Resolve interned records back to raw records for verification."""

from __future__ import annotations

from typing import Iterable, List, Sequence

from src.data.schemas import InternedRecord, RawRecord

from .errors import RoundTripMismatch
from .rewriter import DisruptionInterners

__all__ = ["reconstruct", "reconstruct_all", "verify_round_trip"]


def reconstruct(record: InternedRecord, interners: DisruptionInterners) -> RawRecord:
    return RawRecord(
        disruption_id=interners.disruption_id.resolve(record.disruption_id),
        line_id=interners.line_id.resolve(record.line_id),
        mode=interners.mode.resolve(record.mode),
        cause=interners.cause.resolve(record.cause),
        severity=interners.severity.resolve(record.severity),
        title=interners.title.resolve(record.title),
        message=None if record.message is None else interners.message.resolve(record.message),
        begin=record.begin,
        end=record.end,
        last_update=record.last_update,
    )


def reconstruct_all(
    records: Iterable[InternedRecord], interners: DisruptionInterners
) -> List[RawRecord]:
    return [reconstruct(r, interners) for r in records]


def verify_round_trip(
    raw: Sequence[RawRecord],
    interned: Sequence[InternedRecord],
    interners: DisruptionInterners,
) -> None:
    """Check that every interned record reconstructs to its original.

    Raises
    ------
    RoundTripMismatch
        On a length mismatch or at the first position whose reconstruction
        differs from the raw record.
    """
    if len(raw) != len(interned):
        raise RoundTripMismatch(
            f"record count differs: {len(raw)} raw vs {len(interned)} interned"
        )
    for i, (original, record) in enumerate(zip(raw, interned)):
        rebuilt = reconstruct(record, interners)
        if rebuilt != original:
            raise RoundTripMismatch(f"record {i} does not match its original: {rebuilt!r} != {original!r}")
