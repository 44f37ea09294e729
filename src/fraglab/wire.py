"""Projection of a ``SegmentModel`` into the Analysis Service wire structure."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import orjson

from fraglab.segments import Segment, SegmentKind, SegmentModel


@dataclass(frozen=True, slots=True)
class WireSegment:
    kind: SegmentKind
    source_index: int | None
    filler_id: int | None
    filler_variant: str | None
    size_bytes: int

    def as_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "sourceIndex": self.source_index,
            "fillerId": self.filler_id,
            "fillerVariant": self.filler_variant,
            "sizeBytes": self.size_bytes,
        }


def wire_segment(seg: Segment) -> WireSegment:
    return WireSegment(
        kind=seg.kind,
        source_index=seg.source_index,
        filler_id=seg.filler_id,
        filler_variant=seg.filler_variant,
        size_bytes=seg.size_bytes,
    )


def serialize_structure(model: SegmentModel) -> tuple[WireSegment, ...]:
    """One record per segment, in model order, read from a fresh snapshot."""
    return tuple(wire_segment(seg) for seg in model.to_sequence())


def encode_structure(records: Iterable[WireSegment]) -> bytes:
    """JSON array for the ``structure`` form field."""
    return orjson.dumps([rec.as_dict() for rec in records])
