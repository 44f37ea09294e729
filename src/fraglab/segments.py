"""Ordered segment model for composing a fragmented layout.

A composition is an ordered sequence of source chunks (fixed-size byte ranges
of the original file) and filler segments (injected content). The model is
the single source of truth: presentation reads ``to_sequence()`` and writes
only through the mutating operations below.

Storage is an arena keyed by stable segment id plus a separate order list of
ids, so reorders never touch the segments themselves.
"""
from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass
from typing import Literal

from fraglab.errors import (
    IndexOutOfRangeError,
    InvalidInputError,
    InvalidOperationError,
    NotFoundError,
)

log = logging.getLogger(__name__)

type SegmentKind = Literal["source_chunk", "filler"]
type Side = Literal["before", "after"]

SOURCE_CHUNK: SegmentKind = "source_chunk"
FILLER: SegmentKind = "filler"

DEFAULT_FILLER_VARIANT = "random_noise"
FILLER_VARIANTS: tuple[str, ...] = (
    DEFAULT_FILLER_VARIANT,
    "zero_fill",
    "repeating_pattern",
)
# Only random noise is produced by the service; the rest degrade to it.
IMPLEMENTED_FILLER_VARIANTS: frozenset[str] = frozenset({DEFAULT_FILLER_VARIANT})

DEFAULT_FILLER_SIZE = 4096
SIDES: tuple[Side, ...] = ("before", "after")


def chunk_segment_id(source_index: int) -> str:
    return f"chunk:{source_index}"


def filler_segment_id(filler_id: int) -> str:
    return f"filler:{filler_id}"


@dataclass(frozen=True, slots=True)
class Segment:
    """One positional unit of the composed structure."""

    kind: SegmentKind
    size_bytes: int
    source_index: int | None = None
    filler_id: int | None = None
    filler_variant: str | None = None
    requested_variant: str | None = None

    def __post_init__(self) -> None:
        if self.size_bytes <= 0:
            raise InvalidInputError(f"size_bytes must be > 0, got {self.size_bytes}")
        if self.kind == SOURCE_CHUNK:
            if self.source_index is None or self.source_index < 0:
                raise InvalidInputError("source chunk requires source_index >= 0")
            if self.filler_id is not None or self.filler_variant is not None:
                raise InvalidInputError("source chunk cannot carry filler fields")
        elif self.kind == FILLER:
            if self.filler_id is None:
                raise InvalidInputError("filler requires filler_id")
            if self.source_index is not None:
                raise InvalidInputError("filler cannot carry source_index")
            if self.filler_variant not in FILLER_VARIANTS:
                raise InvalidInputError(f"unknown filler variant {self.filler_variant!r}")
        else:
            raise InvalidInputError(f"unknown segment kind {self.kind!r}")

    @property
    def segment_id(self) -> str:
        if self.kind == SOURCE_CHUNK:
            return chunk_segment_id(self.source_index)  # type: ignore[arg-type]
        return filler_segment_id(self.filler_id)  # type: ignore[arg-type]

    @property
    def is_filler(self) -> bool:
        return self.kind == FILLER

    def as_dict(self) -> dict[str, object]:
        return {
            "segment_id": self.segment_id,
            "kind": self.kind,
            "size_bytes": self.size_bytes,
            "source_index": self.source_index,
            "filler_id": self.filler_id,
            "filler_variant": self.filler_variant,
            "requested_variant": self.requested_variant,
        }


def resolve_filler_variant(variant: str | None) -> str:
    """Map a requested variant to the one that will actually be produced."""
    requested = variant or DEFAULT_FILLER_VARIANT
    if requested not in FILLER_VARIANTS:
        raise InvalidInputError(
            f"unknown filler variant {requested!r}; expected one of {', '.join(FILLER_VARIANTS)}"
        )
    if requested not in IMPLEMENTED_FILLER_VARIANTS:
        log.warning(
            "Filler variant %r is not implemented; substituting %r",
            requested,
            DEFAULT_FILLER_VARIANT,
        )
        return DEFAULT_FILLER_VARIANT
    return requested


class SegmentModel:
    """Authoritative composition state: arena of segments plus an order list.

    Filler ids come from a counter owned by this instance and are never
    reused, not even across ``reset()``.
    """

    def __init__(self, *, filler_size: int = DEFAULT_FILLER_SIZE) -> None:
        if filler_size <= 0:
            raise InvalidInputError(f"filler_size must be > 0, got {filler_size}")
        self._filler_size = filler_size
        self._segments: dict[str, Segment] = {}
        self._order: list[str] = []
        self._filler_ids = itertools.count(1)
        self._chunk_size: int | None = None
        self._source_bytes = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self, total_bytes: int, chunk_size: int) -> None:
        """Replace the structure with ascending source chunks of ``chunk_size``."""
        if total_bytes <= 0:
            raise InvalidInputError(f"total_bytes must be > 0, got {total_bytes}")
        if chunk_size <= 0:
            raise InvalidInputError(f"chunk_size must be > 0, got {chunk_size}")

        count = math.ceil(total_bytes / chunk_size)
        segments: dict[str, Segment] = {}
        order: list[str] = []
        remaining = total_bytes
        for index in range(count):
            seg = Segment(
                kind=SOURCE_CHUNK,
                size_bytes=min(chunk_size, remaining),
                source_index=index,
            )
            remaining -= seg.size_bytes
            segments[seg.segment_id] = seg
            order.append(seg.segment_id)

        self._segments = segments
        self._order = order
        self._chunk_size = chunk_size
        self._source_bytes = total_bytes
        log.debug("Initialized %d source chunks (%d bytes, chunk=%d)", count, total_bytes, chunk_size)

    def reset(self) -> None:
        """Empty everything, source chunks included."""
        self._segments = {}
        self._order = []
        self._chunk_size = None
        self._source_bytes = 0

    # ------------------------------------------------------------------
    # Fillers
    # ------------------------------------------------------------------
    def insert_filler(
        self,
        variant: str | None,
        at_index: int,
        *,
        size_bytes: int | None = None,
    ) -> Segment:
        """Insert a fresh filler at ``at_index`` (clamped to ``[0, len]``)."""
        size = self._filler_size if size_bytes is None else size_bytes
        if size <= 0:
            raise InvalidInputError(f"filler size must be > 0, got {size}")
        effective = resolve_filler_variant(variant)
        position = max(0, min(int(at_index), len(self._order)))

        seg = Segment(
            kind=FILLER,
            size_bytes=size,
            filler_id=next(self._filler_ids),
            filler_variant=effective,
            requested_variant=variant or DEFAULT_FILLER_VARIANT,
        )
        self._segments[seg.segment_id] = seg
        self._order.insert(position, seg.segment_id)
        return seg

    def remove_filler(self, filler_id: int | str) -> Segment:
        """Remove the filler with ``filler_id`` and return it."""
        segment_id = self._filler_key(filler_id)
        seg = self._segments.get(segment_id)
        if seg is None:
            raise NotFoundError(f"no filler with id {filler_id!r}")
        self._order.remove(segment_id)
        del self._segments[segment_id]
        return seg

    def clear_fillers(self) -> int:
        """Drop every filler; chunks keep their current relative order."""
        fillers = [sid for sid in self._order if self._segments[sid].is_filler]
        if not fillers:
            return 0
        self._order = [sid for sid in self._order if not self._segments[sid].is_filler]
        for sid in fillers:
            del self._segments[sid]
        return len(fillers)

    # ------------------------------------------------------------------
    # Reordering
    # ------------------------------------------------------------------
    def move(self, from_index: int, to_index: int, side: Side = "before") -> Segment:
        """Move the segment at ``from_index`` next to the one at ``to_index``."""
        self._check_index(from_index, "from_index")
        self._check_index(to_index, "to_index")
        return self.move_segment(self._order[from_index], self._order[to_index], side)

    def move_segment(self, segment_id: str, target_id: str, side: Side = "before") -> Segment:
        """Move ``segment_id`` so it lands ``side`` of ``target_id``.

        The target position is looked up after the moved id is taken out, so
        the result is the same whether the move goes forward or backward.
        """
        if side not in SIDES:
            raise InvalidInputError(f"side must be 'before' or 'after', got {side!r}")
        seg = self.get(segment_id)
        if target_id not in self._segments:
            raise NotFoundError(f"no segment with id {target_id!r}")
        if segment_id == target_id:
            return seg

        order = list(self._order)
        order.remove(segment_id)
        anchor = order.index(target_id)
        order.insert(anchor if side == "before" else anchor + 1, segment_id)
        self._order = order
        return seg

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    def to_sequence(self) -> tuple[Segment, ...]:
        """Immutable snapshot of the segments in order."""
        return tuple(self._segments[sid] for sid in self._order)

    def __len__(self) -> int:
        return len(self._order)

    def get(self, segment_id: str) -> Segment:
        seg = self._segments.get(segment_id)
        if seg is None:
            raise NotFoundError(f"no segment with id {segment_id!r}")
        return seg

    def index_of(self, segment_id: str) -> int:
        if segment_id not in self._segments:
            raise NotFoundError(f"no segment with id {segment_id!r}")
        return self._order.index(segment_id)

    def segment_at(self, index: int) -> Segment:
        self._check_index(index, "index")
        return self._segments[self._order[index]]

    def fillers(self) -> tuple[Segment, ...]:
        return tuple(seg for seg in self.to_sequence() if seg.is_filler)

    @property
    def chunk_size(self) -> int | None:
        return self._chunk_size

    @property
    def filler_size(self) -> int:
        return self._filler_size

    @property
    def source_bytes(self) -> int:
        return self._source_bytes

    @property
    def total_bytes(self) -> int:
        """Size of the composed artifact."""
        return sum(seg.size_bytes for seg in self._segments.values())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _check_index(self, index: int, name: str) -> None:
        if not 0 <= index < len(self._order):
            raise IndexOutOfRangeError(
                f"{name} {index} out of range for {len(self._order)} segments"
            )

    def _filler_key(self, filler_id: int | str) -> str:
        if isinstance(filler_id, str):
            if filler_id.startswith("chunk:"):
                raise InvalidOperationError(
                    f"{filler_id} is a source chunk; chunks are only removed by reset"
                )
            if filler_id.startswith("filler:"):
                return filler_id
            try:
                return filler_segment_id(int(filler_id))
            except ValueError as exc:
                raise NotFoundError(f"no filler with id {filler_id!r}") from exc
        return filler_segment_id(filler_id)
