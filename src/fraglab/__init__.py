"""Fragment composition and boundary reconciliation."""

from fraglab.aggregate import RunSummary, summarize_results, summarize_run
from fraglab.errors import (
    FragLabError,
    IndexOutOfRangeError,
    InvalidInputError,
    InvalidOperationError,
    NotFoundError,
    ServiceError,
    ServiceUnavailableError,
)
from fraglab.ground_truth import project_ground_truth
from fraglab.reconcile import (
    classify_accuracy,
    pair_detected_ranges,
    parse_accuracy,
    reconcile,
    reconcile_image,
)
from fraglab.reorder import ReorderController, side_from_geometry
from fraglab.result_types import (
    DetectedRange,
    GroundTruthFragment,
    ImageReconciliation,
    ReconciliationRecord,
)
from fraglab.segments import Segment, SegmentModel
from fraglab.wire import WireSegment, encode_structure, serialize_structure

__all__ = [
    "DetectedRange",
    "FragLabError",
    "GroundTruthFragment",
    "ImageReconciliation",
    "IndexOutOfRangeError",
    "InvalidInputError",
    "InvalidOperationError",
    "NotFoundError",
    "ReconciliationRecord",
    "ReorderController",
    "RunSummary",
    "Segment",
    "SegmentModel",
    "ServiceError",
    "ServiceUnavailableError",
    "WireSegment",
    "classify_accuracy",
    "encode_structure",
    "pair_detected_ranges",
    "parse_accuracy",
    "project_ground_truth",
    "reconcile",
    "reconcile_image",
    "serialize_structure",
    "side_from_geometry",
    "summarize_results",
    "summarize_run",
]
