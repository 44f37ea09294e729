"""Run-report utilities for persisting and comparing reconciliation runs."""
from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from fraglab.aggregate import NOT_APPLICABLE, RunSummary
from fraglab.io_utils import load_json, save_json
from fraglab.result_types import ImageReconciliation
from fraglab.wire import WireSegment

REPORT_VERSION = "1.0"
REPORT_FILENAME = "run_report.json"

_COUNT_KEYS: tuple[str, ...] = (
    "total_images",
    "total_fragments",
    "total_detected_fragments",
    "total_matched_fragments",
)
_MEAN_KEYS: tuple[str, ...] = (
    "avg_first_start_accuracy",
    "avg_first_end_accuracy",
    "avg_all_start_accuracy",
    "avg_all_end_accuracy",
)


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(UTC).isoformat()


def generate_run_id(prefix: str = "fragment_run") -> str:
    """Generate a compact run id suitable for artifact naming."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}_{ts}_{uuid4().hex[:8]}"


def default_report_path(report_dir: Path) -> Path:
    return report_dir / REPORT_FILENAME


def versioned_report_path(report_dir: Path, run_id: str) -> Path:
    return report_dir / f"run_report_{run_id}.json"


def build_run_report(
    *,
    run_id: str,
    summary: RunSummary,
    images: Sequence[ImageReconciliation],
    mode: str,
    source: str | None = None,
    structure: Sequence[WireSegment] = (),
    service_url: str | None = None,
    notes: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the canonical report payload for one submission."""
    return {
        "report_version": REPORT_VERSION,
        "created_at": utc_now_iso(),
        "run_id": run_id,
        "mode": mode,
        "source": source,
        "service_url": service_url,
        "structure": [rec.as_dict() for rec in structure],
        "summary": summary.as_dict(),
        "images": [img.as_dict() for img in images],
        "errors_count": sum(1 for img in images if img.error),
        "notes": notes or {},
    }


def write_run_report(report_dir: Path, report: dict[str, Any]) -> tuple[Path, Path]:
    """Write canonical + versioned report files side by side."""
    canonical = default_report_path(report_dir)
    versioned = versioned_report_path(report_dir, str(report["run_id"]))
    save_json(report, canonical, pretty=True)
    save_json(report, versioned, pretty=True)
    return canonical, versioned


def load_run_report(path: Path) -> dict[str, Any]:
    data = load_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid run report payload in {path}")
    return data


def compare_run_reports(
    current: dict[str, Any],
    previous: dict[str, Any],
) -> dict[str, Any]:
    """Compare two reports and produce deterministic deltas.

    Mean deltas are ``None`` unless both runs have a numeric value.
    """
    curr = current.get("summary", {})
    prev = previous.get("summary", {})
    curr = curr if isinstance(curr, dict) else {}
    prev = prev if isinstance(prev, dict) else {}

    count_delta: dict[str, int] = {}
    for key in _COUNT_KEYS:
        count_delta[key] = int(curr.get(key, 0) or 0) - int(prev.get(key, 0) or 0)

    mean_delta: dict[str, float | None] = {}
    for key in _MEAN_KEYS:
        a = _numeric(curr.get(key))
        b = _numeric(prev.get(key))
        mean_delta[key] = round(a - b, 2) if a is not None and b is not None else None

    return {
        "current_run_id": current.get("run_id"),
        "previous_run_id": previous.get("run_id"),
        "count_delta": count_delta,
        "mean_delta": mean_delta,
        "errors_count_delta": int(current.get("errors_count", 0) or 0)
        - int(previous.get("errors_count", 0) or 0),
    }


def _numeric(value: Any) -> float | None:
    if value is None or value == NOT_APPLICABLE or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
