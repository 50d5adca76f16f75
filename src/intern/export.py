"""Tabular and on-disk form of an interned dataset.

The records table holds one unsigned integer column per interned field,
typed with the numpy dtype matching the handle width, next to the
timestamp columns. An absent optional value is stored as the all-ones
handle of that dtype, which no dictionary entry ever uses. Each
dictionary becomes its own two-column table (``handle``, ``value``) in
handle order. Both are written as parquet.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from src.data.schemas import (
    INTERNED_FIELDS,
    OPTIONAL_FIELDS,
    TIMESTAMP_FIELDS,
    InternedRecord,
)

from .errors import RoundTripMismatch
from .interner import Interner
from .rewriter import DisruptionInterners, width_capacity
from .size import SizeModel

__all__ = [
    "PARQUET_CODECS",
    "handle_dtype",
    "null_handle",
    "to_frames",
    "from_frames",
    "save",
    "load",
    "verify_saved",
    "codec_label",
    "codec_sizes",
]

logger = logging.getLogger(__name__)

_DTYPES = {1: np.uint8, 2: np.uint16, 4: np.uint32, 8: np.uint64}
RECORDS_FILE = "records.parquet"
# Compression codecs compared by :func:`codec_sizes`; ``None`` writes plain pages.
PARQUET_CODECS: Tuple[Optional[str], ...] = (None, "snappy", "gzip", "zstd")


def handle_dtype(width: int) -> np.dtype:
    try:
        return np.dtype(_DTYPES[width])
    except KeyError:
        raise ValueError(f"unsupported handle width {width}") from None


def null_handle(dtype: np.dtype) -> int:
    """Reserved handle value marking an absent optional field."""
    return int(np.iinfo(dtype).max)


def _handle_column(records: Sequence[InternedRecord], name: str, dtype: np.dtype) -> np.ndarray:
    null = null_handle(dtype)
    values = (getattr(r, name) for r in records)
    return np.fromiter((null if v is None else v for v in values), dtype=dtype, count=len(records))


def to_frames(
    records: Sequence[InternedRecord],
    interners: DisruptionInterners,
    model: Optional[SizeModel] = None,
) -> Tuple[pd.DataFrame, Dict[str, pd.DataFrame]]:
    """Return ``(records_df, dictionaries)`` for the interned dataset."""
    model = model or SizeModel()
    width = model.resolve_handle_width(interners.max_len())
    dtype = handle_dtype(width)

    data: Dict[str, object] = {name: _handle_column(records, name, dtype) for name in INTERNED_FIELDS}
    for name in TIMESTAMP_FIELDS:
        data[name] = pd.to_datetime(pd.Series([getattr(r, name) for r in records], dtype=object))
    records_df = pd.DataFrame(data, columns=[*INTERNED_FIELDS, *TIMESTAMP_FIELDS])

    dictionaries = {
        name: pd.DataFrame(
            {
                "handle": np.arange(len(interner), dtype=dtype),
                "value": pd.Series(list(interner), dtype=object),
            }
        )
        for name, interner in interners.items()
    }
    return records_df, dictionaries


def _handles_from_column(column: pd.Series, name: str) -> List[Optional[int]]:
    null = null_handle(column.dtype)
    out: List[Optional[int]] = []
    for value in column.to_numpy():
        value = int(value)
        if value == null:
            if name not in OPTIONAL_FIELDS:
                raise ValueError(f"column {name!r} holds the null handle but is required")
            out.append(None)
        else:
            out.append(value)
    return out


def from_frames(
    records_df: pd.DataFrame, dictionaries: Dict[str, pd.DataFrame]
) -> Tuple[List[InternedRecord], DisruptionInterners]:
    """Inverse of :func:`to_frames`."""
    built = {}
    for name in INTERNED_FIELDS:
        df = dictionaries[name].sort_values("handle")
        if not np.array_equal(df["handle"].to_numpy(), np.arange(len(df))):
            raise ValueError(f"dictionary {name!r} has gaps in its handles")
        width = records_df[name].dtype.itemsize
        built[name] = Interner.from_values(
            (str(v) for v in df["value"]), max_size=width_capacity(width)
        )
    interners = DisruptionInterners(**built)

    handles = {name: _handles_from_column(records_df[name], name) for name in INTERNED_FIELDS}
    times = {
        name: [ts.to_pydatetime() for ts in pd.to_datetime(records_df[name])]
        for name in TIMESTAMP_FIELDS
    }
    records = [
        InternedRecord(
            **{name: handles[name][i] for name in INTERNED_FIELDS},
            **{name: times[name][i] for name in TIMESTAMP_FIELDS},
        )
        for i in range(len(records_df))
    ]
    return records, interners


def save(
    records: Sequence[InternedRecord],
    interners: DisruptionInterners,
    out_dir: str | Path,
    model: Optional[SizeModel] = None,
    compression: Optional[str] = "snappy",
) -> Dict[str, Path]:
    """Write the records table and dictionaries under *out_dir*."""
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    records_df, dictionaries = to_frames(records, interners, model)

    written = {"records": out / RECORDS_FILE}
    records_df.to_parquet(written["records"], index=False, compression=compression)
    for name, df in dictionaries.items():
        written[name] = out / f"dict_{name}.parquet"
        df.to_parquet(written[name], index=False, compression=compression)
    logger.info(
        "Wrote %d records and %d dictionaries to %s (compression=%s)",
        len(records_df),
        len(dictionaries),
        out,
        compression,
    )
    return written


def load(out_dir: str | Path) -> Tuple[List[InternedRecord], DisruptionInterners]:
    out = Path(out_dir)
    records_df = pd.read_parquet(out / RECORDS_FILE)
    dictionaries = {name: pd.read_parquet(out / f"dict_{name}.parquet") for name in INTERNED_FIELDS}
    return from_frames(records_df, dictionaries)


def verify_saved(
    records: Sequence[InternedRecord],
    interners: DisruptionInterners,
    out_dir: str | Path,
) -> None:
    """Load *out_dir* back and check it equals ``(records, interners)``.

    Raises
    ------
    RoundTripMismatch
        If the dictionaries or any record read back differ.
    """
    loaded, loaded_interners = load(out_dir)
    for name, interner in interners.items():
        if loaded_interners.for_field(name) != interner:
            raise RoundTripMismatch(f"dictionary {name!r} read back from {out_dir} differs")
    if len(loaded) != len(records):
        raise RoundTripMismatch(
            f"record count read back from {out_dir} differs: {len(loaded)} vs {len(records)}"
        )
    for i, (original, record) in enumerate(zip(records, loaded)):
        if record != original:
            raise RoundTripMismatch(f"record {i} read back from {out_dir} differs: {record!r} != {original!r}")


def codec_label(codec: Optional[str]) -> str:
    return codec or "none"


def codec_sizes(
    records: Sequence[InternedRecord],
    interners: DisruptionInterners,
    out_dir: str | Path,
    model: Optional[SizeModel] = None,
    codecs: Iterable[Optional[str]] = PARQUET_CODECS,
) -> Dict[str, int]:
    """Write the dataset once per parquet codec and return bytes on disk.

    Each copy goes to ``out_dir/<codec>/`` and is read back and compared
    before its size is counted.
    """
    sizes: Dict[str, int] = {}
    for codec in codecs:
        label = codec_label(codec)
        target = Path(out_dir) / label
        written = save(records, interners, target, model, compression=codec)
        verify_saved(records, interners, target)
        sizes[label] = sum(p.stat().st_size for p in written.values())
    return sizes
