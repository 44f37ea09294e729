"""Tests for fraglab.wire — model projection into the service structure."""
from __future__ import annotations

import orjson

from fraglab.segments import SegmentModel
from fraglab.wire import encode_structure, serialize_structure


def _model_with_filler_seven() -> SegmentModel:
    model = SegmentModel()
    model.initialize(4096 + 2048, 4096)
    for _ in range(7):
        seg = model.insert_filler(None, 1)
    for filler in model.fillers():
        if filler.filler_id != 7:
            model.remove_filler(filler.filler_id)  # type: ignore[arg-type]
    assert seg.filler_id == 7
    return model


def test_serialize_lists_every_segment_in_order() -> None:
    records = serialize_structure(_model_with_filler_seven())
    assert [rec.as_dict() for rec in records] == [
        {
            "kind": "source_chunk",
            "sourceIndex": 0,
            "fillerId": None,
            "fillerVariant": None,
            "sizeBytes": 4096,
        },
        {
            "kind": "filler",
            "sourceIndex": None,
            "fillerId": 7,
            "fillerVariant": "random_noise",
            "sizeBytes": 4096,
        },
        {
            "kind": "source_chunk",
            "sourceIndex": 1,
            "fillerId": None,
            "fillerVariant": None,
            "sizeBytes": 2048,
        },
    ]


def test_serialize_reflects_model_at_call_time() -> None:
    model = SegmentModel()
    model.initialize(3 * 4096, 4096)
    stale = serialize_structure(model)
    model.move(0, 2, "after")
    fresh = serialize_structure(model)
    assert [r.source_index for r in stale] == [0, 1, 2]
    assert [r.source_index for r in fresh] == [1, 2, 0]


def test_encode_structure_is_json_array() -> None:
    records = serialize_structure(_model_with_filler_seven())
    decoded = orjson.loads(encode_structure(records))
    assert isinstance(decoded, list)
    assert [item["kind"] for item in decoded] == ["source_chunk", "filler", "source_chunk"]


def test_serialize_empty_model() -> None:
    assert serialize_structure(SegmentModel()) == ()
    assert encode_structure(()) == b"[]"
