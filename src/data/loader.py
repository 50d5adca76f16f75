"""Utilities to load the disruption feed from JSON snapshots.

The feed is a series of JSON documents, one per polling snapshot. A
successful document carries ``disruptions``, ``lines`` and
``lastUpdatedDate``; a failed poll carries ``statusCode``, ``error`` and
``message`` instead. :func:`load_feed` discovers the documents, decodes
the successful ones into :class:`~src.data.schemas.RawRecord` rows and
returns them in file order together with a few ingestion counters.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from .schemas import RawRecord

__all__ = ["FeedDecodeError", "LoadResult", "FEED_TIME_FORMAT", "records_from_payload", "load_feed"]

logger = logging.getLogger(__name__)

FEED_TIME_FORMAT = "%Y%m%dT%H%M%S"


class FeedDecodeError(ValueError):
    """A feed document does not have the expected shape."""


@dataclass
class LoadResult:
    records: List[RawRecord] = field(default_factory=list)
    files: int = 0
    failed_files: int = 0
    error_payloads: int = 0
    unlinked: int = 0
    input_bytes: int = 0


def _require(obj: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in obj or obj[key] is None:
        raise FeedDecodeError(f"{where}: missing {key!r}")
    return obj[key]


def _parse_time(value: Any, where: str) -> datetime:
    try:
        return datetime.strptime(str(value), FEED_TIME_FORMAT)
    except ValueError as exc:
        raise FeedDecodeError(f"{where}: bad timestamp {value!r}") from exc


def _is_error_payload(payload: Mapping[str, Any]) -> bool:
    return "statusCode" in payload and "disruptions" not in payload


def _impacted_lines(lines: List[Mapping[str, Any]]) -> Dict[str, List[Mapping[str, Any]]]:
    """Map disruption id to the lines it affects, in feed order."""
    by_disruption: Dict[str, List[Mapping[str, Any]]] = {}
    for line in lines:
        for obj in line.get("impactedObjects") or []:
            for did in obj.get("disruptionIds") or []:
                seen = by_disruption.setdefault(did, [])
                if not any(x is line for x in seen):
                    seen.append(line)
    return by_disruption


def records_from_payload(payload: Mapping[str, Any]) -> tuple[List[RawRecord], int]:
    """Flatten one success document into records.

    One record is emitted per (disruption, impacted line, application
    period). Returns the records and the number of disruptions that no
    line references.
    """
    disruptions = _require(payload, "disruptions", "document")
    lines = _require(payload, "lines", "document")
    by_disruption = _impacted_lines(lines)

    records: List[RawRecord] = []
    unlinked = 0
    for d in disruptions:
        did = _require(d, "id", "disruption")
        where = f"disruption {did}"
        impacted = by_disruption.get(did)
        if not impacted:
            unlinked += 1
            continue
        last_update = _parse_time(_require(d, "lastUpdate", where), where)
        periods = _require(d, "applicationPeriods", where)
        for line in impacted:
            line_where = f"line {line.get('id')!r}"
            for period in periods:
                records.append(
                    RawRecord(
                        disruption_id=str(did),
                        line_id=_require(line, "id", line_where),
                        mode=_require(line, "mode", line_where),
                        cause=_require(d, "cause", where),
                        severity=_require(d, "severity", where),
                        title=_require(d, "title", where),
                        message=d.get("message"),
                        begin=_parse_time(_require(period, "begin", where), where),
                        end=_parse_time(_require(period, "end", where), where),
                        last_update=last_update,
                    )
                )
    return records, unlinked


def _iter_json_files(paths: Iterable[str | Path]) -> List[Path]:
    """Return JSON files under *paths* sorted by path."""
    found: List[Path] = []
    for p in paths:
        p = Path(p)
        if p.is_dir():
            found.extend(x for x in p.rglob("*.json") if x.is_file())
        elif p.is_file():
            found.append(p)
        else:
            logger.warning("Skipping missing path %s", p)
    return sorted(set(found))


def load_feed(paths: Iterable[str | Path]) -> LoadResult:
    """Load and decode every feed snapshot under *paths*.

    Documents that are not valid JSON or do not match the feed shape are
    logged and counted in ``failed_files``; loading continues with the
    next document.
    """
    paths = list(paths)
    result = LoadResult()
    for path in _iter_json_files(paths):
        data = path.read_bytes()
        result.input_bytes += len(data)
        try:
            payload = json.loads(data)
            if not isinstance(payload, dict):
                raise FeedDecodeError("document is not a JSON object")
            if _is_error_payload(payload):
                logger.info("Error payload in %s: status %s", path.name, payload.get("statusCode"))
                result.error_payloads += 1
                result.files += 1
                continue
            records, unlinked = records_from_payload(payload)
        except (json.JSONDecodeError, FeedDecodeError, TypeError, AttributeError) as exc:
            logger.error("Could not decode %s: %s", path, exc)
            result.failed_files += 1
            continue
        result.records.extend(records)
        result.unlinked += unlinked
        result.files += 1
        logger.debug("Decoded %d records from %s", len(records), path.name)

    if not result.files and not result.failed_files:
        logger.warning("No JSON files found in %s", paths)
    return result


def _main() -> None:  # pragma: no cover - convenience utility
    parser = argparse.ArgumentParser(description="Load disruption feed snapshots")
    parser.add_argument("paths", nargs="+", type=Path, help="Files or directories of JSON snapshots")
    args = parser.parse_args()

    result = load_feed(args.paths)
    print(
        f"Decoded {len(result.records)} records from {result.files} files "
        f"(+ {result.failed_files} failed files, {result.error_payloads} error payloads, "
        f"{result.unlinked} unlinked disruptions)"
    )


if __name__ == "__main__":  # pragma: no cover
    logging.basicConfig(level=logging.INFO)
    _main()
