import dataclasses
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))
from src.intern.errors import HandleOutOfRange, RoundTripMismatch
from src.intern.reconstruct import reconstruct, reconstruct_all, verify_round_trip
from src.intern.rewriter import DisruptionInterners, rewrite
from src.sim.synthetic import DisruptionFeedSpec, generate_records


def test_round_trip_reproduces_every_record():
    records = generate_records(DisruptionFeedSpec(disruptions=60, seed=11))
    interners = DisruptionInterners()
    interned = rewrite(records, interners)

    assert reconstruct_all(interned, interners) == records
    verify_round_trip(records, interned, interners)


def test_reconstruct_single_record():
    records = generate_records(DisruptionFeedSpec(disruptions=5))
    interners = DisruptionInterners()
    interned = rewrite(records, interners)
    assert reconstruct(interned[-1], interners) == records[-1]


def test_verify_reports_tampered_record():
    records = generate_records(DisruptionFeedSpec(disruptions=10, seed=2))
    interners = DisruptionInterners()
    interned = rewrite(records, interners)
    other = next(h for h in range(len(interners.line_id)) if h != interned[3].line_id)
    interned[3] = dataclasses.replace(interned[3], line_id=other)

    with pytest.raises(RoundTripMismatch, match="record 3"):
        verify_round_trip(records, interned, interners)


def test_verify_reports_length_mismatch():
    records = generate_records(DisruptionFeedSpec(disruptions=4))
    interners = DisruptionInterners()
    interned = rewrite(records, interners)
    with pytest.raises(RoundTripMismatch):
        verify_round_trip(records, interned[:-1], interners)


def test_handle_from_other_run_is_out_of_range():
    records = generate_records(DisruptionFeedSpec(disruptions=20, seed=5))
    interners = DisruptionInterners()
    interned = rewrite(records, interners)
    with pytest.raises(HandleOutOfRange):
        reconstruct(interned[0], DisruptionInterners())


def test_empty_round_trip():
    interners = DisruptionInterners()
    assert reconstruct_all(rewrite([], interners), interners) == []
    verify_round_trip([], [], interners)
