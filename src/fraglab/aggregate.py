"""Run-level statistics over per-image reconciliations."""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from fraglab.reconcile import reconcile_results
from fraglab.result_types import GroundTruthFragment, ImageReconciliation

NOT_APPLICABLE = "N/A"
_CENTS = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Aggregate over one submission. Means are ``None`` when not applicable."""

    total_images: int
    total_fragments: int
    total_detected_fragments: int
    total_matched_fragments: int
    avg_first_start_accuracy: float | None
    avg_first_end_accuracy: float | None
    avg_all_start_accuracy: float | None
    avg_all_end_accuracy: float | None

    def as_dict(self) -> dict[str, Any]:
        def _fmt(value: float | None) -> float | str:
            return NOT_APPLICABLE if value is None else value

        return {
            "total_images": self.total_images,
            "total_fragments": self.total_fragments,
            "total_detected_fragments": self.total_detected_fragments,
            "total_matched_fragments": self.total_matched_fragments,
            "avg_first_start_accuracy": _fmt(self.avg_first_start_accuracy),
            "avg_first_end_accuracy": _fmt(self.avg_first_end_accuracy),
            "avg_all_start_accuracy": _fmt(self.avg_all_start_accuracy),
            "avg_all_end_accuracy": _fmt(self.avg_all_end_accuracy),
        }


def mean_or_none(values: Sequence[float]) -> float | None:
    """Arithmetic mean rounded half-up to 2 places, ``None`` for an empty series.

    Rounding works on the exact binary value of the mean, so ``96.125``
    becomes ``96.13`` rather than the banker's ``96.12``.
    """
    if not values:
        return None
    mean = sum(values) / len(values)
    return float(Decimal(mean).quantize(_CENTS, rounding=ROUND_HALF_UP))


def summarize_run(images: Iterable[ImageReconciliation]) -> RunSummary:
    """Fold per-image reconciliations into a ``RunSummary``.

    The first fragment of an image is its record at index 0 in service
    order, not the lowest fragment number.
    """
    images = list(images)
    first_start: list[float] = []
    first_end: list[float] = []
    all_start: list[float] = []
    all_end: list[float] = []

    for image in images:
        for idx, rec in enumerate(image.records):
            if rec.start_accuracy is not None:
                all_start.append(rec.start_accuracy)
                if idx == 0:
                    first_start.append(rec.start_accuracy)
            if rec.end_accuracy is not None:
                all_end.append(rec.end_accuracy)
                if idx == 0:
                    first_end.append(rec.end_accuracy)

    return RunSummary(
        total_images=len(images),
        total_fragments=sum(img.total_fragments for img in images),
        total_detected_fragments=sum(img.total_detected_fragments for img in images),
        total_matched_fragments=sum(img.matched_fragments for img in images),
        avg_first_start_accuracy=mean_or_none(first_start),
        avg_first_end_accuracy=mean_or_none(first_end),
        avg_all_start_accuracy=mean_or_none(all_start),
        avg_all_end_accuracy=mean_or_none(all_end),
    )


def summarize_results(
    results: Iterable[Mapping[str, Any]],
    *,
    ground_truth: Sequence[GroundTruthFragment] | None = None,
) -> tuple[list[ImageReconciliation], RunSummary]:
    """Reconcile raw PerImageResult payloads and summarize them in one step."""
    images = reconcile_results(results, ground_truth=ground_truth)
    return images, summarize_run(images)
