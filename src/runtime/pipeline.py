"""One-shot interning pipeline over a disruption feed.

The run is a straight line: decoded records are rewritten into interned
form, sized, and reconstructed for verification. When an output directory
is given the interned form is also written as parquet, read back and
compared, once per compression codec. Any failure aborts the whole run;
there is no partial result.

Usage
-----
Intern a directory of feed snapshots::

    python -m src.runtime.pipeline data/disruptions

Or a synthetic feed::

    python -m src.runtime.pipeline --synthetic 500
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from src.data.loader import load_feed
from src.data.schemas import InternedRecord, RawRecord
from src.intern.export import PARQUET_CODECS, codec_sizes, verify_saved
from src.intern.export import save as save_interned
from src.intern.reconstruct import verify_round_trip
from src.intern.rewriter import DisruptionInterners, rewrite
from src.intern.size import SizeModel, SizeReport, field_summary, size_report
from src.sim.synthetic import DisruptionFeedSpec, generate_records

__all__ = ["PipelineConfig", "PipelineResult", "run", "run_config", "codec_table", "format_report"]

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    paths: List[Path] = field(default_factory=list)
    synthetic: int = 0
    seed: int = 0
    out_dir: Optional[Path] = None
    size_model: SizeModel = field(default_factory=SizeModel.from_env)
    verify: bool = True


@dataclass
class PipelineResult:
    interned: List[InternedRecord]
    interners: DisruptionInterners
    report: SizeReport
    fields: pd.DataFrame
    input_bytes: Optional[int] = None
    files: int = 0
    failed_files: int = 0
    error_payloads: int = 0
    unlinked: int = 0
    written: Dict[str, Path] = field(default_factory=dict)
    codec_bytes: Dict[str, int] = field(default_factory=dict)

    @property
    def on_disk_bytes(self) -> int:
        return sum(p.stat().st_size for p in self.written.values())


def run(
    records: Sequence[RawRecord],
    model: Optional[SizeModel] = None,
    *,
    verify: bool = True,
    out_dir: Optional[Path] = None,
    codecs: Iterable[Optional[str]] = PARQUET_CODECS,
) -> PipelineResult:
    """Intern *records*, size both forms and optionally verify and persist.

    With *out_dir* set, the interned form is saved there and, for each of
    *codecs*, under ``out_dir/codecs/<codec>/``. Every written copy is
    loaded back and compared when *verify* is true.
    """
    model = model or SizeModel()
    interners = DisruptionInterners.for_handle_width(model.handle_width)

    interned = rewrite(records, interners)
    logger.info("Rewrote %d records; largest dictionary has %d values", len(interned), interners.max_len())

    report = size_report(records, interned, interners, model)
    logger.info(
        "Raw %d bytes -> interned %d bytes (%s, %d-byte handles)",
        report.raw_bytes,
        report.interned_bytes,
        report.ratio_text,
        report.handle_width,
    )

    if verify:
        verify_round_trip(records, interned, interners)
        logger.info("Round trip verified for %d records", len(records))

    result = PipelineResult(
        interned=interned,
        interners=interners,
        report=report,
        fields=field_summary(interners, model),
    )
    if out_dir is not None:
        result.written = save_interned(interned, interners, out_dir, model)
        if verify:
            verify_saved(interned, interners, out_dir)
            logger.info("Saved layout in %s verified", out_dir)
        result.codec_bytes = codec_sizes(interned, interners, Path(out_dir) / "codecs", model, codecs)
    return result


def run_config(cfg: PipelineConfig) -> PipelineResult:
    """Load the records *cfg* points at, then :func:`run` them."""
    if cfg.synthetic:
        records = generate_records(DisruptionFeedSpec(disruptions=cfg.synthetic, seed=cfg.seed))
        load = None
    else:
        load = load_feed(cfg.paths)
        records = load.records
    result = run(records, cfg.size_model, verify=cfg.verify, out_dir=cfg.out_dir)
    if load is not None:
        result.input_bytes = load.input_bytes
        result.files = load.files
        result.failed_files = load.failed_files
        result.error_payloads = load.error_payloads
        result.unlinked = load.unlinked
    return result


def codec_table(result: PipelineResult) -> pd.DataFrame:
    """Parquet bytes per codec, as a share of the input (or raw size without one)."""
    base = result.input_bytes if result.input_bytes else result.report.raw_bytes
    rows = [
        {"codec": codec, "bytes": size, "pct_of_input": round(100.0 * size / base, 2) if base else 0.0}
        for codec, size in result.codec_bytes.items()
    ]
    return pd.DataFrame(rows, columns=["codec", "bytes", "pct_of_input"])


def format_report(result: PipelineResult) -> List[str]:
    """Human-readable summary lines for *result*."""
    r = result.report
    lines = []
    if result.input_bytes is not None:
        lines.append(
            f"Parsed {result.input_bytes} bytes from {result.files} files "
            f"(+ {result.failed_files} failed files, {result.error_payloads} error payloads, "
            f"{result.unlinked} unlinked disruptions)"
        )
    if result.codec_bytes:
        lines.append(codec_table(result).to_string(index=False))
    lines.append(f"Records: {r.records}")
    lines.append(f"Raw size: {r.raw_bytes} bytes")
    lines.append(
        f"Interned size: {r.interned_bytes} bytes "
        f"(handles {r.handle_bytes}, dictionaries {r.dictionary_bytes}, inline {r.inline_bytes})"
    )
    lines.append(f"Handle width: {r.handle_width} bytes")
    lines.append(f"Compression ratio: {r.ratio_text}")
    if result.written:
        lines.append(f"On disk (parquet): {result.on_disk_bytes} bytes")
    lines.append(result.fields.to_string(index=False))
    return lines


def _main() -> None:  # pragma: no cover - convenience utility
    parser = argparse.ArgumentParser(description="Intern a disruption feed and report its footprint")
    parser.add_argument("paths", nargs="*", type=Path, help="Feed snapshot files or directories")
    parser.add_argument("--synthetic", type=int, default=0, help="Generate N synthetic disruptions instead")
    parser.add_argument("--seed", type=int, default=0, help="Seed for the synthetic feed")
    parser.add_argument("--out-dir", type=Path, default=None, help="Write the interned form as parquet here")
    parser.add_argument("--timestamp-width", type=int, default=None, help="Bytes per timestamp field")
    parser.add_argument("--text-overhead", type=int, default=None, help="Extra bytes per text slot")
    parser.add_argument("--handle-width", type=int, choices=(1, 2, 4, 8), default=None, help="Fixed handle width")
    parser.add_argument("--no-verify", action="store_true", help="Skip the round-trip check")
    args = parser.parse_args()

    if not args.paths and not args.synthetic:
        parser.error("pass feed paths or --synthetic N")

    env = SizeModel.from_env()
    model = SizeModel(
        timestamp_width=args.timestamp_width if args.timestamp_width is not None else env.timestamp_width,
        text_overhead=args.text_overhead if args.text_overhead is not None else env.text_overhead,
        handle_width=args.handle_width if args.handle_width is not None else env.handle_width,
    )
    cfg = PipelineConfig(
        paths=list(args.paths),
        synthetic=args.synthetic,
        seed=args.seed,
        out_dir=args.out_dir,
        size_model=model,
        verify=not args.no_verify,
    )
    for line in format_report(run_config(cfg)):
        print(line)


if __name__ == "__main__":  # pragma: no cover
    logging.basicConfig(level=logging.INFO)
    _main()
