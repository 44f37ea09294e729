"""Interaction-loop controller tying the model, the service, and reconciliation.

A session owns one ``SegmentModel`` and its ``ReorderController``. Submissions
are guarded by a pending flag: the triggering control is disabled while a
call is in flight and re-enabled in a cleanup step whether the call
succeeded or not. Service failures come back as an unsuccessful
``SubmissionOutcome`` with a user-facing message; structural errors from the
model propagate.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fraglab.aggregate import RunSummary, summarize_results
from fraglab.config import Settings
from fraglab.errors import (
    InvalidOperationError,
    ServiceError,
    ServiceUnavailableError,
)
from fraglab.ground_truth import project_ground_truth
from fraglab.reorder import ReorderController
from fraglab.result_types import GroundTruthFragment, ImageReconciliation
from fraglab.segments import SegmentModel
from fraglab.service import AnalysisResponse, AnalysisServiceClient, JpegInfo
from fraglab.wire import WireSegment, serialize_structure

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubmissionOutcome:
    ok: bool
    images: list[ImageReconciliation] = field(default_factory=list)
    summary: RunSummary | None = None
    error: str | None = None
    structure: tuple[WireSegment, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "error": self.error,
            "summary": self.summary.as_dict() if self.summary else None,
            "images": [img.as_dict() for img in self.images],
            "structure": [rec.as_dict() for rec in self.structure],
        }


@dataclass(frozen=True, slots=True)
class ServiceStatus:
    online: bool
    label: str
    message: str


class CompositionSession:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: AnalysisServiceClient | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.client = client or AnalysisServiceClient(
            self.settings.service_url,
            timeout=self.settings.timeout_sec,
        )
        self.model = SegmentModel(filler_size=self.settings.filler_size)
        self.controller = ReorderController(self.model)
        self.source_path: Path | None = None
        self.last_analyzed: list[str] = []
        self.last_error: str | None = None
        self._pending = False

    # ------------------------------------------------------------------
    # Source lifecycle
    # ------------------------------------------------------------------
    def select_source(self, path: Path) -> None:
        """Select a new source file; any previous structure is replaced."""
        size = path.stat().st_size
        self.model.initialize(size, self.settings.chunk_size)
        self.controller.cancel()
        self.source_path = path
        log.info("Selected %s (%d bytes, %d chunks)", path.name, size, len(self.model))

    def clear_source(self) -> None:
        self.controller.cancel()
        self.model.reset()
        self.source_path = None

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------
    @property
    def submit_enabled(self) -> bool:
        return not self._pending and self.source_path is not None

    @property
    def pending(self) -> bool:
        return self._pending

    def ground_truth(self) -> tuple[GroundTruthFragment, ...]:
        """Fragments the current composition is expected to produce."""
        if self.model.chunk_size is None:
            return ()
        return project_ground_truth(self.model.to_sequence(), self.model.chunk_size)

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------
    def submit_custom(self) -> SubmissionOutcome:
        """Submit the source with the current composition."""
        if self.source_path is None:
            raise InvalidOperationError("no source file selected")
        source = self.source_path
        # Serialized immediately before the call so no stale copy is sent.
        structure = serialize_structure(self.model)
        truth = self.ground_truth()
        outcome = self._submit(
            lambda: self.client.analyze_custom(source, structure),
            filenames=[source.name],
            ground_truth=truth,
        )
        if outcome.ok:
            return SubmissionOutcome(
                ok=True,
                images=outcome.images,
                summary=outcome.summary,
                structure=structure,
            )
        return outcome

    def analyze(
        self,
        files: Sequence[Path],
        *,
        fragment: bool = True,
        insertion_size_kb: int = 0,
    ) -> SubmissionOutcome:
        """Submit files for service-side fragmentation and detection."""
        filenames = [f.name for f in files] if fragment else []
        return self._submit(
            lambda: self.client.analyze(
                files,
                fragment=fragment,
                insertion_size_kb=insertion_size_kb,
            ),
            filenames=filenames,
        )

    def reanalyze(self) -> SubmissionOutcome:
        """Re-run detection on the files of the last fragmenting submission."""
        if not self.last_analyzed:
            raise InvalidOperationError("no previously analyzed files to re-analyze")
        names = list(self.last_analyzed)
        return self._submit(lambda: self.client.reanalyze(names), filenames=None)

    def inspect_source(self) -> JpegInfo | None:
        """Structural hints for the selected source, or ``None`` on failure."""
        if self.source_path is None:
            raise InvalidOperationError("no source file selected")
        try:
            return self.client.jpeg_info(self.source_path)
        except (ServiceUnavailableError, ServiceError) as exc:
            self.last_error = str(exc)
            log.warning("Source inspection failed: %s", exc)
            return None

    def check_health(self) -> ServiceStatus:
        try:
            name = self.client.health()
        except ServiceUnavailableError:
            return ServiceStatus(
                online=False,
                label="Backend Offline",
                message="Cannot connect to backend. Please start the server.",
            )
        except ServiceError:
            return ServiceStatus(
                online=False,
                label="Backend Not Responding",
                message="Backend is not responding. Please start the server.",
            )
        return ServiceStatus(online=True, label=name, message="Backend is running and ready!")

    def _submit(
        self,
        call: Callable[[], AnalysisResponse],
        *,
        filenames: list[str] | None,
        ground_truth: Sequence[GroundTruthFragment] | None = None,
    ) -> SubmissionOutcome:
        if self._pending:
            raise InvalidOperationError("a submission is already pending")
        self._pending = True
        self.last_error = None
        try:
            response = call()
        except (ServiceUnavailableError, ServiceError) as exc:
            self.last_error = str(exc)
            log.warning("Submission failed: %s", exc)
            return SubmissionOutcome(ok=False, error=str(exc))
        finally:
            self._pending = False

        images, summary = summarize_results(response.results, ground_truth=ground_truth)
        if filenames:
            self.last_analyzed = filenames
        log.info(
            "Run complete: %d images, %d/%d fragments matched",
            summary.total_images,
            summary.total_matched_fragments,
            summary.total_fragments,
        )
        return SubmissionOutcome(ok=True, images=images, summary=summary)
