"""Reconcile ground-truth fragments with detector-reported ranges.

Accuracy percentages are produced by the Analysis Service and treated as
opaque here: this module parses, pairs, and classifies them, and never
derives a percentage from offsets.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from fraglab.result_types import (
    NOT_DETECTED_LABEL,
    DetectedRange,
    GroundTruthFragment,
    ImageReconciliation,
    ReconciliationRecord,
    classify_accuracy,
)

log = logging.getLogger(__name__)

__all__ = [
    "classify_accuracy",
    "pair_detected_ranges",
    "parse_accuracy",
    "reconcile",
    "reconcile_image",
    "reconcile_results",
]

_EXTRA_RESULT_KEYS: tuple[str, ...] = (
    "totalInsertedBytes",
    "originalJpegSize",
    "outputJpegSize",
    "originalEntropyStart",
    "originalEntropyEnd",
    "detectionRate",
    "validationMessage",
)


def parse_accuracy(value: Any) -> float | None:
    """Parse a service accuracy value; ``None`` is the not-detected sentinel.

    Accepts numbers, numeric strings, and percent strings such as ``"98.50%"``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.strip()
        if not text or text.casefold() in {NOT_DETECTED_LABEL.casefold(), "n/a"}:
            return None
        try:
            number = float(text.removesuffix("%").strip())
        except ValueError:
            log.warning("Unparseable accuracy value %r treated as not detected", value)
            return None
        return number if math.isfinite(number) else None
    log.warning("Unexpected accuracy type %s treated as not detected", type(value).__name__)
    return None


def pair_detected_ranges(
    ground_truth: Sequence[GroundTruthFragment],
    detected: Sequence[DetectedRange],
) -> list[DetectedRange | None]:
    """Greedy pairing in ground-truth order, each range used at most once.

    A fragment takes the unused range with the smallest combined start and
    end offset distance; ties go to the earlier range.
    """
    used = [False] * len(detected)
    pairs: list[DetectedRange | None] = []
    for frag in ground_truth:
        best_index = -1
        best_delta: int | None = None
        for j, rng in enumerate(detected):
            if used[j]:
                continue
            delta = abs(frag.start_offset - rng.start_offset) + abs(frag.end_offset - rng.end_offset)
            if best_delta is None or delta < best_delta:
                best_delta = delta
                best_index = j
        if best_index >= 0:
            used[best_index] = True
            pairs.append(detected[best_index])
        else:
            pairs.append(None)
    return pairs


def reconcile(
    ground_truth: Sequence[GroundTruthFragment],
    detected: Sequence[DetectedRange],
    accuracies: Mapping[int, tuple[Any, Any]] | None = None,
) -> tuple[ReconciliationRecord, ...]:
    """Pair fragments with ranges and attach the supplied accuracies.

    ``accuracies`` maps fragment number to ``(start, end)`` service values.
    A fragment without a paired range is not detected on both sides.
    """
    accuracies = accuracies or {}
    records: list[ReconciliationRecord] = []
    for frag, rng in zip(ground_truth, pair_detected_ranges(ground_truth, detected), strict=True):
        start_raw, end_raw = accuracies.get(frag.fragment_number, (None, None))
        records.append(_record(frag, rng, start_raw, end_raw))
    return tuple(records)


def reconcile_image(
    result: Mapping[str, Any],
    *,
    ground_truth: Sequence[GroundTruthFragment] | None = None,
) -> ImageReconciliation:
    """Build an ``ImageReconciliation`` from one PerImageResult payload.

    Records follow ``fragmentComparisons`` in the order the service returned
    them. ``ground_truth`` (for example projected from the local model) is
    used when the payload carries no ``fragmentDetails``.
    """
    filename = str(result.get("filename") or "")
    error = result.get("error")
    parsed_truth = tuple(_parse_fragment_details(result.get("fragmentDetails")))
    truth = parsed_truth or tuple(ground_truth or ())
    truth_by_number = {frag.fragment_number: frag for frag in truth}

    records = tuple(_parse_comparisons(result.get("fragmentComparisons"), filename, truth_by_number))
    ranges = tuple(_parse_ranges(result.get("detectedFragmentRanges")))

    reported_matched = _as_int(result.get("matchedFragments"))
    return ImageReconciliation(
        filename=filename,
        error=str(error) if error else None,
        records=records,
        ground_truth=truth,
        detected_ranges=ranges,
        total_fragments=_as_int(result.get("totalFragments")) or 0,
        total_detected_fragments=_as_int(result.get("totalDetectedFragments")) or 0,
        matched_fragments=(
            reported_matched
            if reported_matched is not None
            else sum(1 for rec in records if rec.matched)
        ),
        extras={k: result[k] for k in _EXTRA_RESULT_KEYS if k in result},
    )


def reconcile_results(
    results: Iterable[Mapping[str, Any]],
    *,
    ground_truth: Sequence[GroundTruthFragment] | None = None,
) -> list[ImageReconciliation]:
    return [
        reconcile_image(result, ground_truth=ground_truth)
        for result in results
        if isinstance(result, Mapping)
    ]


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------
def _record(
    frag: GroundTruthFragment,
    rng: DetectedRange | None,
    start_raw: Any,
    end_raw: Any,
) -> ReconciliationRecord:
    if rng is None:
        return ReconciliationRecord(fragment=frag, detected=None, start_accuracy=None, end_accuracy=None)
    return ReconciliationRecord(
        fragment=frag,
        detected=rng,
        start_accuracy=parse_accuracy(start_raw),
        end_accuracy=parse_accuracy(end_raw),
    )


def _parse_comparisons(
    raw: Any,
    filename: str,
    truth_by_number: Mapping[int, GroundTruthFragment],
) -> Iterable[ReconciliationRecord]:
    for idx, comp in enumerate(_as_list(raw)):
        if not isinstance(comp, Mapping):
            # A skipped leading entry shifts which record counts as first.
            log.warning("Skipping malformed fragment comparison %d for %s: %r", idx, filename, comp)
            continue
        yield _parse_comparison(comp, idx, truth_by_number)


def _parse_comparison(
    comp: Mapping[str, Any],
    idx: int,
    truth_by_number: Mapping[int, GroundTruthFragment],
) -> ReconciliationRecord:
    number = _as_int(comp.get("actualFragmentNumber")) or idx + 1
    known = truth_by_number.get(number)
    frag = GroundTruthFragment(
        fragment_number=number,
        start_offset=_as_int(comp.get("actualStartOffset")) or 0,
        end_offset=_as_int(comp.get("actualEndOffset")) or 0,
        original_start=known.original_start if known else None,
        original_end=known.original_end if known else None,
        insertion_point=known.insertion_point if known else None,
        insertion_length=known.insertion_length if known else None,
    )
    det_start = _as_int(comp.get("detectedStartOffset"))
    det_end = _as_int(comp.get("detectedEndOffset"))
    rng = (
        DetectedRange(start_offset=det_start, end_offset=det_end)
        if det_start is not None and det_end is not None
        else None
    )
    return _record(frag, rng, comp.get("startAccuracy"), comp.get("endAccuracy"))


def _parse_fragment_details(raw: Any) -> Iterable[GroundTruthFragment]:
    for idx, detail in enumerate(_as_list(raw)):
        if not isinstance(detail, Mapping):
            continue
        original_start = _as_int(detail.get("originalStartOffset"))
        original_end = _as_int(detail.get("originalEndOffset"))
        output_start = _as_int(detail.get("outputStartOffset"))
        output_end = _as_int(detail.get("outputEndOffset"))
        insertion_point = _as_int(detail.get("insertionPointInOriginal"))
        yield GroundTruthFragment(
            fragment_number=_as_int(detail.get("fragmentNumber")) or idx + 1,
            start_offset=output_start if output_start is not None else (original_start or 0),
            end_offset=output_end if output_end is not None else (original_end or 0),
            original_start=original_start,
            original_end=original_end,
            insertion_point=insertion_point if insertion_point is not None and insertion_point >= 0 else None,
            insertion_length=_as_int(detail.get("insertionLength")),
        )


def _parse_ranges(raw: Any) -> Iterable[DetectedRange]:
    for item in _as_list(raw):
        if not isinstance(item, Mapping):
            continue
        start = _as_int(item.get("start"))
        end = _as_int(item.get("end"))
        if start is None or end is None:
            log.warning("Skipping malformed detected range %r", item)
            continue
        yield DetectedRange(start_offset=start, end_offset=end)


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
