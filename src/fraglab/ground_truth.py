"""Predict ground-truth fragments from a composed segment sequence."""
from __future__ import annotations

from collections.abc import Sequence

from fraglab.errors import InvalidInputError
from fraglab.result_types import GroundTruthFragment
from fraglab.segments import Segment


def project_ground_truth(
    sequence: Sequence[Segment],
    chunk_size: int,
    *,
    origin_offset: int = 0,
) -> tuple[GroundTruthFragment, ...]:
    """Fragments the composition will contain, numbered from 1.

    Each maximal run of adjacent source chunks with consecutive source
    indices is one fragment, so original offsets never invert. Fillers
    before the first run shift output offsets without opening a fragment;
    fillers after a run are summed into its ``insertion_length``.
    """
    if chunk_size <= 0:
        raise InvalidInputError(f"chunk_size must be > 0, got {chunk_size}")

    fragments: list[GroundTruthFragment] = []
    run: list[tuple[Segment, int]] = []
    trailing_filler = 0
    cursor = 0

    def _close_run() -> None:
        nonlocal run, trailing_filler
        if not run:
            return
        first, first_out = run[0]
        last, last_out = run[-1]
        original_start = origin_offset + first.source_index * chunk_size  # type: ignore[operator]
        original_end = origin_offset + last.source_index * chunk_size + last.size_bytes  # type: ignore[operator]
        fragments.append(
            GroundTruthFragment(
                fragment_number=len(fragments) + 1,
                start_offset=first_out,
                end_offset=last_out + last.size_bytes,
                original_start=original_start,
                original_end=original_end,
                insertion_point=original_end if trailing_filler else None,
                insertion_length=trailing_filler,
            )
        )
        run = []
        trailing_filler = 0

    for seg in sequence:
        if seg.is_filler:
            if run:
                trailing_filler += seg.size_bytes
        else:
            if trailing_filler or (run and seg.source_index != run[-1][0].source_index + 1):  # type: ignore[operator]
                _close_run()
            run.append((seg, cursor))
        cursor += seg.size_bytes
    _close_run()
    return tuple(fragments)
