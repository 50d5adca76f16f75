"""Synthetic disruption feed generator for quick demos and tests.

Produces a feed-shaped document (the same JSON layout the loader reads)
with a handful of lines, a small vocabulary of causes, severities and
title templates, and per-disruption messages and application periods.
Generation is seeded, so equal ``DisruptionFeedSpec`` values yield equal feeds.
"""

from __future__ import annotations

import json
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Tuple

from src.data.loader import FEED_TIME_FORMAT, records_from_payload
from src.data.schemas import RawRecord

__all__ = ["DisruptionFeedSpec", "generate_payload", "generate_records", "write_feed"]


@dataclass
class DisruptionFeedSpec:
    disruptions: int = 40
    lines: Tuple[Tuple[str, str], ...] = (
        ("line:IDFM:C01742", "RapidTransit"),
        ("line:IDFM:C01743", "RapidTransit"),
        ("line:IDFM:C01371", "Metro"),
        ("line:IDFM:C01374", "Metro"),
        ("line:IDFM:C01389", "Tramway"),
        ("line:IDFM:C01058", "Bus"),
    )
    causes: Tuple[str, ...] = ("PERTURBATION", "TRAVAUX")
    severities: Tuple[str, ...] = ("BLOQUANTE", "PERTURBEE", "INFORMATION")
    titles: Tuple[str, ...] = (
        "Trafic interrompu",
        "Trafic perturbé",
        "Travaux de modernisation",
        "Arrêt non desservi",
        "Manifestation",
    )
    max_lines_per_disruption: int = 2
    max_periods: int = 3
    start: str = "2024-01-01 05:00:00"
    seed: int = 0


def _fmt(t: datetime) -> str:
    return t.strftime(FEED_TIME_FORMAT)


def generate_payload(spec: DisruptionFeedSpec) -> Dict[str, Any]:
    """Return a success document with ``spec.disruptions`` disruptions."""
    rng = random.Random(spec.seed)
    base = datetime.fromisoformat(spec.start)
    disruptions: List[Dict[str, Any]] = []
    impacted: Dict[str, List[str]] = {lid: [] for lid, _ in spec.lines}

    for i in range(spec.disruptions):
        did = str(uuid.UUID(int=rng.getrandbits(128), version=4))
        t0 = base + timedelta(minutes=15 * i + rng.randrange(15))
        periods = []
        t = t0
        for _ in range(rng.randint(1, spec.max_periods)):
            dur = timedelta(hours=rng.randint(1, 6))
            periods.append({"begin": _fmt(t), "end": _fmt(t + dur)})
            t = t + dur + timedelta(days=1)
        disruptions.append(
            {
                "id": did,
                "applicationPeriods": periods,
                "lastUpdate": _fmt(t0 - timedelta(minutes=rng.randint(1, 30))),
                "cause": rng.choice(spec.causes),
                "severity": rng.choice(spec.severities),
                "tags": [],
                "title": rng.choice(spec.titles),
                "message": f"<p>Incident n°{i + 1}: circulation adaptée jusqu'à {_fmt(t)}.</p>",
                "shortMessage": None,
                "disruption_id": did,
            }
        )
        count = rng.randint(1, min(spec.max_lines_per_disruption, len(spec.lines)))
        for lid, _ in rng.sample(list(spec.lines), count):
            impacted[lid].append(did)

    lines = [
        {
            "id": lid,
            "name": lid.rsplit(":", 1)[-1],
            "shortName": lid.rsplit(":", 1)[-1],
            "mode": mode,
            "networkId": "network:IDFM:Operator_100",
            "impactedObjects": [
                {"type": "line", "id": lid, "name": lid.rsplit(":", 1)[-1], "disruptionIds": impacted[lid]}
            ],
        }
        for lid, mode in spec.lines
    ]
    return {
        "disruptions": disruptions,
        "lines": lines,
        "lastUpdatedDate": base.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
    }


def generate_records(spec: DisruptionFeedSpec) -> List[RawRecord]:
    records, _ = records_from_payload(generate_payload(spec))
    return records


def write_feed(spec: DisruptionFeedSpec, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(generate_payload(spec), ensure_ascii=False), encoding="utf-8")
    return path
