"""Result types shared by ground-truth projection, reconciliation, and aggregation."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

type AccuracyClass = Literal["high", "medium", "low", "not-detected"]

HIGH_ACCURACY_MIN = 95.0
MEDIUM_ACCURACY_MIN = 85.0
NOT_DETECTED_LABEL = "Not Detected"


def classify_accuracy(value: float | None) -> AccuracyClass:
    """Bucket one boundary accuracy percentage; ``None`` means not detected."""
    if value is None:
        return "not-detected"
    if value >= HIGH_ACCURACY_MIN:
        return "high"
    if value >= MEDIUM_ACCURACY_MIN:
        return "medium"
    return "low"


@dataclass(frozen=True, slots=True)
class GroundTruthFragment:
    """A maximal run of original bytes between filler insertions.

    ``start_offset``/``end_offset`` are positions in the composed artifact,
    the coordinates detected ranges are reported in. ``original_*`` are the
    same bytes' positions in the source file.
    """

    fragment_number: int
    start_offset: int
    end_offset: int
    original_start: int | None = None
    original_end: int | None = None
    insertion_point: int | None = None
    insertion_length: int | None = None

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset

    def as_dict(self) -> dict[str, Any]:
        return {
            "fragment_number": self.fragment_number,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "original_start": self.original_start,
            "original_end": self.original_end,
            "insertion_point": self.insertion_point,
            "insertion_length": self.insertion_length,
        }


@dataclass(frozen=True, slots=True)
class DetectedRange:
    start_offset: int
    end_offset: int

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset

    def as_dict(self) -> dict[str, int]:
        return {"start_offset": self.start_offset, "end_offset": self.end_offset}


@dataclass(frozen=True, slots=True)
class ReconciliationRecord:
    fragment: GroundTruthFragment
    detected: DetectedRange | None
    start_accuracy: float | None
    end_accuracy: float | None

    @property
    def start_class(self) -> AccuracyClass:
        return classify_accuracy(self.start_accuracy)

    @property
    def end_class(self) -> AccuracyClass:
        return classify_accuracy(self.end_accuracy)

    @property
    def matched(self) -> bool:
        return self.start_class != "not-detected" and self.end_class != "not-detected"

    @property
    def start_difference(self) -> int | None:
        if self.detected is None:
            return None
        return abs(self.fragment.start_offset - self.detected.start_offset)

    @property
    def end_difference(self) -> int | None:
        if self.detected is None:
            return None
        return abs(self.fragment.end_offset - self.detected.end_offset)

    def as_dict(self) -> dict[str, Any]:
        return {
            "fragment": self.fragment.as_dict(),
            "detected": self.detected.as_dict() if self.detected else None,
            "start_accuracy": self.start_accuracy,
            "end_accuracy": self.end_accuracy,
            "start_class": self.start_class,
            "end_class": self.end_class,
            "start_difference": self.start_difference,
            "end_difference": self.end_difference,
            "matched": self.matched,
        }


@dataclass(frozen=True, slots=True)
class ImageReconciliation:
    """Reconciliation of one PerImageResult."""

    filename: str
    error: str | None = None
    records: tuple[ReconciliationRecord, ...] = ()
    ground_truth: tuple[GroundTruthFragment, ...] = ()
    detected_ranges: tuple[DetectedRange, ...] = ()
    total_fragments: int = 0
    total_detected_fragments: int = 0
    matched_fragments: int = 0
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def first_record(self) -> ReconciliationRecord | None:
        return self.records[0] if self.records else None

    @property
    def computed_matched(self) -> int:
        return sum(1 for rec in self.records if rec.matched)

    def as_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "error": self.error,
            "total_fragments": self.total_fragments,
            "total_detected_fragments": self.total_detected_fragments,
            "matched_fragments": self.matched_fragments,
            "records": [rec.as_dict() for rec in self.records],
            "ground_truth": [gt.as_dict() for gt in self.ground_truth],
            "detected_ranges": [r.as_dict() for r in self.detected_ranges],
            "extras": dict(self.extras),
        }
