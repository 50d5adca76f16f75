import sys
from datetime import datetime
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))
from src.data.schemas import INTERNED_FIELDS, RawRecord
from src.intern.errors import HandleWidthOverflow
from src.intern.rewriter import DisruptionInterners, rewrite
from src.intern.size import (
    SizeModel,
    compression_ratio,
    field_summary,
    interned_size,
    raw_size,
    select_handle_width,
    size_report,
    value_bytes,
)
from src.sim.synthetic import DisruptionFeedSpec, generate_records


def _rec(
    line,
    i,
    cause="signal_failure",
    mode="Metro",
    severity="BLOQUANTE",
    title="Trafic interrompu",
    did="d1",
    message=None,
):
    return RawRecord(
        disruption_id=did,
        line_id=line,
        mode=mode,
        cause=cause,
        severity=severity,
        title=title,
        message=message,
        begin=datetime(2024, 1, 1, 8, i),
        end=datetime(2024, 1, 1, 9, i),
        last_update=datetime(2024, 1, 1, 7),
    )


def _intern(records):
    interners = DisruptionInterners()
    return rewrite(records, interners), interners


def test_sizes_for_small_feed():
    records = [_rec("A", 0), _rec("A", 1), _rec("B", 2)]
    interned, interners = _intern(records)

    # 48 text bytes (2 id + 46 categorical) and 24 timestamp bytes per record
    assert raw_size(records) == 3 * (48 + 24)
    # 21 handle bytes + 49 dictionary bytes + 72 timestamp bytes
    assert interned_size(interned, interners) == 142

    report = size_report(records, interned, interners)
    assert report.records == 3
    assert report.handle_width == 1
    assert report.handle_bytes == 21
    assert report.dictionary_bytes == 49
    assert report.inline_bytes == 72
    assert report.ratio == pytest.approx(216 / 142)
    assert report.ratio_text == "1.52x"
    assert compression_ratio(records, interned, interners) == pytest.approx(216 / 142)


def test_empty_input_ratio_is_one():
    interned, interners = _intern([])
    report = size_report([], interned, interners)
    assert report.raw_bytes == 0
    assert report.interned_bytes == 0
    assert report.ratio == 1.0
    assert report.ratio_text == "1.00x"


def test_all_distinct_values_do_not_compress():
    records = [
        _rec(
            f"L{i}",
            i,
            cause=f"C{i}",
            mode=f"M{i}",
            severity=f"S{i}",
            title=f"T{i}",
            did=f"d{i}",
            message=f"m{i}",
        )
        for i in range(4)
    ]
    interned, interners = _intern(records)
    for _, interner in interners.items():
        assert len(interner) == len(records)
    ratio = compression_ratio(records, interned, interners)
    assert ratio < 1.0


def test_repetitive_feed_compresses():
    records = generate_records(DisruptionFeedSpec(disruptions=80, seed=1))
    interned, interners = _intern(records)
    assert interned_size(interned, interners) < raw_size(records)


def test_repeated_snapshots_store_each_text_once():
    # Ten polls of the same feed repeat every disruption, message included.
    records = generate_records(DisruptionFeedSpec(disruptions=200, seed=1)) * 10
    interned, interners = _intern(records)

    assert len(interners.disruption_id) == len({r.disruption_id for r in records})
    assert len(interners.message) == len({r.message for r in records if r.message is not None})
    assert interners.disruption_id.references == len(records)

    report = size_report(records, interned, interners)
    # Only the timestamps remain inline.
    assert report.inline_bytes == len(records) * 3 * 8
    distinct_text = sum(
        len(v.encode("utf-8"))
        for name in INTERNED_FIELDS
        for v in {getattr(r, name) for r in records}
        if v is not None
    )
    assert report.dictionary_bytes == distinct_text
    assert report.ratio > 3


def test_text_overhead_counts_every_slot():
    records = [_rec("A", 0), _rec("A", 1)]
    interned, interners = _intern(records)
    model = SizeModel(text_overhead=2)
    # 7 text slots per record, message included even when absent
    assert raw_size(records, model) == raw_size(records) + 2 * 7 * 2
    # one slot per dictionary value; the absent message has no dictionary entry
    assert interned_size(interned, interners, model) == interned_size(interned, interners) + 2 * 6


def test_timestamp_width_is_configurable():
    records = [_rec("A", 0)]
    assert raw_size(records, SizeModel(timestamp_width=4)) == raw_size(records) - 3 * 4


@pytest.mark.parametrize(
    "max_len,width",
    [(0, 1), (1, 1), (255, 1), (256, 2), (65535, 2), (65536, 4), (2**32 - 1, 4), (2**32, 8)],
)
def test_select_handle_width(max_len, width):
    assert select_handle_width(max_len) == width


def test_fixed_handle_width_overflow_fails_loudly():
    records = [_rec(f"L{i}", i % 60) for i in range(300)]
    interned, interners = _intern(records)
    with pytest.raises(HandleWidthOverflow):
        interned_size(interned, interners, SizeModel(handle_width=1))
    assert size_report(records, interned, interners, SizeModel(handle_width=2)).handle_width == 2
    assert size_report(records, interned, interners).handle_width == 2


def test_size_model_validation():
    with pytest.raises(ValueError):
        SizeModel(handle_width=3)
    with pytest.raises(ValueError):
        SizeModel(timestamp_width=0)


def test_size_model_from_env(monkeypatch):
    monkeypatch.setenv("INTERN_TIMESTAMP_WIDTH", "4")
    monkeypatch.setenv("INTERN_TEXT_OVERHEAD", "1")
    monkeypatch.setenv("INTERN_HANDLE_WIDTH", "2")
    assert SizeModel.from_env() == SizeModel(timestamp_width=4, text_overhead=1, handle_width=2)
    monkeypatch.delenv("INTERN_HANDLE_WIDTH")
    assert SizeModel.from_env().handle_width is None


def test_value_bytes_uses_utf8_length():
    model = SizeModel()
    assert value_bytes("Trafic perturbé", model) == 16
    assert value_bytes(None, model) == 0
    assert value_bytes(datetime(2024, 1, 1), model) == 8
    with pytest.raises(TypeError):
        value_bytes(3.5, model)


def test_field_summary():
    records = [_rec("A", 0), _rec("A", 1), _rec("B", 2)]
    _, interners = _intern(records)
    df = field_summary(interners)
    assert list(df["field"]) == ["disruption_id", "line_id", "mode", "cause", "severity", "title", "message"]
    row = df.set_index("field").loc["line_id"]
    assert row["distinct"] == 2
    assert row["references"] == 3
    assert row["dictionary_bytes"] == 2
    assert row["refs_per_value"] == pytest.approx(1.5)
    empty = df.set_index("field").loc["message"]
    assert empty["distinct"] == 0
    assert empty["references"] == 0
    assert empty["refs_per_value"] == 0.0
