"""Tests for fraglab.session — submission lifecycle and error recovery."""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import pytest

from fraglab.config import Settings
from fraglab.errors import InvalidOperationError, ServiceError, ServiceUnavailableError
from fraglab.service import AnalysisResponse, JpegInfo
from fraglab.session import CompositionSession
from fraglab.wire import WireSegment


class FakeClient:
    """Stands in for AnalysisServiceClient; records calls and replays results."""

    def __init__(self, results: list[dict[str, Any]] | None = None, *, error: Exception | None = None) -> None:
        self.results = results or []
        self.error = error
        self.calls: list[tuple[str, Any]] = []
        self.session: CompositionSession | None = None
        self.pending_seen: list[bool] = []

    def _respond(self, name: str, arg: Any) -> AnalysisResponse:
        self.calls.append((name, arg))
        if self.session is not None:
            self.pending_seen.append(self.session.pending)
        if self.error is not None:
            raise self.error
        return AnalysisResponse(success=True, results=self.results)

    def health(self) -> str:
        if self.error is not None:
            raise self.error
        return "JPEG Fragmentation Service"

    def analyze_custom(self, file: Path, structure: Iterable[WireSegment]) -> AnalysisResponse:
        return self._respond("analyze_custom", (file, tuple(structure)))

    def analyze(self, files: Sequence[Path], *, fragment: bool = True, insertion_size_kb: int = 0) -> AnalysisResponse:
        return self._respond("analyze", (list(files), fragment, insertion_size_kb))

    def reanalyze(self, filenames: Sequence[str]) -> AnalysisResponse:
        return self._respond("reanalyze", list(filenames))

    def jpeg_info(self, file: Path) -> JpegInfo:
        if self.error is not None:
            raise self.error
        return JpegInfo(entropy_start=600, entropy_end=9000, header_end_block=0, safe_noise_start_block=1)


def _result(name: str) -> dict[str, Any]:
    return {
        "filename": name,
        "totalFragments": 2,
        "totalDetectedFragments": 2,
        "matchedFragments": 2,
        "fragmentComparisons": [
            {
                "actualFragmentNumber": 1,
                "actualStartOffset": 0,
                "actualEndOffset": 4096,
                "detectedStartOffset": 0,
                "detectedEndOffset": 4096,
                "startAccuracy": "100.00%",
                "endAccuracy": "100.00%",
            },
            {
                "actualFragmentNumber": 2,
                "actualStartOffset": 8192,
                "actualEndOffset": 10000,
                "detectedStartOffset": 8200,
                "detectedEndOffset": 10000,
                "startAccuracy": "90.00%",
                "endAccuracy": "100.00%",
            },
        ],
    }


def _session(tmp_path: Path, client: FakeClient) -> tuple[CompositionSession, Path]:
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"\x00" * 10_000)
    session = CompositionSession(Settings(chunk_size=4096, filler_size=4096), client=client)  # type: ignore[arg-type]
    client.session = session
    return session, source


def test_select_source_initializes_model(tmp_path: Path) -> None:
    session, source = _session(tmp_path, FakeClient())
    assert not session.submit_enabled
    session.select_source(source)
    assert len(session.model) == 3
    assert session.model.source_bytes == 10_000
    assert session.submit_enabled


def test_replacing_source_resets_structure(tmp_path: Path) -> None:
    session, source = _session(tmp_path, FakeClient())
    session.select_source(source)
    session.model.insert_filler(None, 1)
    session.controller.begin_drag("chunk:0")
    other = tmp_path / "small.jpg"
    other.write_bytes(b"\x00" * 100)
    session.select_source(other)
    assert [s.segment_id for s in session.model.to_sequence()] == ["chunk:0"]
    assert session.controller.dragging is None


def test_clear_source(tmp_path: Path) -> None:
    session, source = _session(tmp_path, FakeClient())
    session.select_source(source)
    session.clear_source()
    assert session.model.to_sequence() == ()
    assert session.source_path is None
    assert session.ground_truth() == ()


def test_submit_custom_sends_live_structure_and_summarizes(tmp_path: Path) -> None:
    client = FakeClient([_result("photo.jpg")])
    session, source = _session(tmp_path, client)
    session.select_source(source)
    session.model.insert_filler(None, 1)

    outcome = session.submit_custom()

    assert outcome.ok
    name, (sent_file, structure) = client.calls[0]
    assert name == "analyze_custom"
    assert sent_file == source
    assert [rec.kind for rec in structure] == ["source_chunk", "filler", "source_chunk", "source_chunk"]
    assert outcome.structure == structure
    assert outcome.summary is not None
    assert outcome.summary.total_matched_fragments == 2
    assert outcome.summary.avg_all_start_accuracy == 95.0
    assert outcome.summary.avg_first_start_accuracy == 100.0
    assert client.pending_seen == [True]
    assert not session.pending
    assert session.last_analyzed == ["photo.jpg"]


def test_submit_without_source_rejected(tmp_path: Path) -> None:
    session, _ = _session(tmp_path, FakeClient())
    with pytest.raises(InvalidOperationError):
        session.submit_custom()


@pytest.mark.parametrize(
    "error",
    [ServiceUnavailableError("Cannot connect"), ServiceError("Server error: 500", status=500)],
)
def test_service_failure_recovers(tmp_path: Path, error: Exception) -> None:
    client = FakeClient(error=error)
    session, source = _session(tmp_path, client)
    session.select_source(source)

    outcome = session.submit_custom()

    assert not outcome.ok
    assert outcome.error == str(error)
    assert outcome.summary is None
    assert session.last_error == str(error)
    assert not session.pending
    assert session.submit_enabled


def test_second_submission_while_pending_rejected(tmp_path: Path) -> None:
    session, source = _session(tmp_path, FakeClient())
    session.select_source(source)
    session._pending = True
    with pytest.raises(InvalidOperationError):
        session.submit_custom()
    assert not session.submit_enabled


def test_analyze_then_reanalyze(tmp_path: Path) -> None:
    client = FakeClient([_result("a.jpg")])
    session, source = _session(tmp_path, client)

    with pytest.raises(InvalidOperationError):
        session.reanalyze()

    outcome = session.analyze([source], fragment=True, insertion_size_kb=4)
    assert outcome.ok
    assert client.calls[0] == ("analyze", ([source], True, 4))

    session.reanalyze()
    assert client.calls[1] == ("reanalyze", ["photo.jpg"])


def test_analyze_without_fragment_does_not_enable_reanalyze(tmp_path: Path) -> None:
    session, source = _session(tmp_path, FakeClient([_result("a.jpg")]))
    session.analyze([source], fragment=False)
    with pytest.raises(InvalidOperationError):
        session.reanalyze()


def test_check_health_states(tmp_path: Path) -> None:
    session, _ = _session(tmp_path, FakeClient())
    status = session.check_health()
    assert status.online
    assert status.label == "JPEG Fragmentation Service"

    session.client = FakeClient(error=ServiceUnavailableError("refused"))  # type: ignore[assignment]
    assert session.check_health().label == "Backend Offline"

    session.client = FakeClient(error=ServiceError("bad", status=500))  # type: ignore[assignment]
    offline = session.check_health()
    assert not offline.online
    assert offline.label == "Backend Not Responding"


def test_inspect_source(tmp_path: Path) -> None:
    session, source = _session(tmp_path, FakeClient())
    with pytest.raises(InvalidOperationError):
        session.inspect_source()
    session.select_source(source)
    info = session.inspect_source()
    assert info is not None
    assert info.entropy_start == 600

    session.client = FakeClient(error=ServiceUnavailableError("down"))  # type: ignore[assignment]
    assert session.inspect_source() is None
    assert session.last_error == "down"


def test_ground_truth_tracks_composition(tmp_path: Path) -> None:
    session, source = _session(tmp_path, FakeClient())
    session.select_source(source)
    assert len(session.ground_truth()) == 1
    session.model.insert_filler(None, 2)
    frags = session.ground_truth()
    assert [(f.start_offset, f.end_offset) for f in frags] == [(0, 8192), (12288, 14096)]
