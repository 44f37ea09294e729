"""Tests for fraglab.ground_truth — fragment prediction from a composition."""
from __future__ import annotations

import pytest

from fraglab.errors import InvalidInputError
from fraglab.ground_truth import project_ground_truth
from fraglab.segments import SegmentModel


def _model(total_bytes: int, chunk_size: int = 1000) -> SegmentModel:
    model = SegmentModel(filler_size=500)
    model.initialize(total_bytes, chunk_size)
    return model


def test_no_fillers_is_one_fragment() -> None:
    model = _model(2500)
    frags = project_ground_truth(model.to_sequence(), 1000)
    assert len(frags) == 1
    frag = frags[0]
    assert (frag.fragment_number, frag.start_offset, frag.end_offset) == (1, 0, 2500)
    assert frag.insertion_point is None
    assert frag.insertion_length == 0


def test_filler_splits_fragments() -> None:
    model = _model(3000)
    model.insert_filler(None, 1)
    frags = project_ground_truth(model.to_sequence(), 1000)
    assert [(f.start_offset, f.end_offset) for f in frags] == [(0, 1000), (1500, 3500)]
    assert [(f.original_start, f.original_end) for f in frags] == [(0, 1000), (1000, 3000)]
    assert frags[0].insertion_point == 1000
    assert frags[0].insertion_length == 500
    assert frags[1].insertion_length == 0


def test_adjacent_fillers_sum_into_one_gap() -> None:
    model = _model(2000)
    model.insert_filler(None, 1)
    model.insert_filler(None, 1)
    frags = project_ground_truth(model.to_sequence(), 1000)
    assert len(frags) == 2
    assert frags[0].insertion_length == 1000
    assert frags[1].start_offset == 2000


def test_leading_filler_shifts_offsets_only() -> None:
    model = _model(2000)
    model.insert_filler(None, 0)
    frags = project_ground_truth(model.to_sequence(), 1000)
    assert len(frags) == 1
    assert (frags[0].start_offset, frags[0].end_offset) == (500, 2500)


def test_trailing_filler_recorded_on_last_fragment() -> None:
    model = _model(2000)
    model.insert_filler(None, 2)
    frags = project_ground_truth(model.to_sequence(), 1000)
    assert len(frags) == 1
    assert frags[0].insertion_point == 2000
    assert frags[0].insertion_length == 500


def test_reordered_chunks_keep_source_offsets() -> None:
    model = _model(3000)
    model.move(2, 0, "before")
    model.insert_filler(None, 1)
    frags = project_ground_truth(model.to_sequence(), 1000)
    assert frags[0].original_start == 2000
    assert frags[0].original_end == 3000
    assert frags[1].original_start == 0
    assert [f.fragment_number for f in frags] == [1, 2]


def test_origin_offset_and_empty_sequence() -> None:
    model = _model(1000)
    frags = project_ground_truth(model.to_sequence(), 1000, origin_offset=600)
    assert frags[0].original_start == 600
    assert project_ground_truth((), 1000) == ()


def test_rejects_bad_chunk_size() -> None:
    with pytest.raises(InvalidInputError):
        project_ground_truth((), 0)


def test_non_consecutive_chunks_split_without_filler() -> None:
    model = _model(3000)
    model.move(2, 0, "before")
    frags = project_ground_truth(model.to_sequence(), 1000)
    assert [(f.start_offset, f.end_offset) for f in frags] == [(0, 1000), (1000, 3000)]
    assert [(f.original_start, f.original_end) for f in frags] == [(2000, 3000), (0, 2000)]
    assert all(f.original_start < f.original_end for f in frags)  # type: ignore[operator]
    assert frags[0].insertion_point is None
    assert frags[0].insertion_length == 0
