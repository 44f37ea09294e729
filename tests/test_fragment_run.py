"""Tests for the fragment_run CLI."""
from __future__ import annotations

import json
import os
import subprocess
import sys
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

# Nothing listens on port 9; keeps service calls offline and fast.
OFFLINE_URL = "http://127.0.0.1:9/api"


def _run_cli(
    root: Path,
    args: list[str],
    *,
    check: bool = True,
    service_url: str = OFFLINE_URL,
) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    env["PYTHONPATH"] = str(root / "src")
    env["FRAGLAB_SERVICE_URL"] = service_url
    env["NO_PROXY"] = "127.0.0.1"
    return subprocess.run(
        [sys.executable, str(root / "scripts" / "fragment_run.py"), *args],
        cwd=str(root),
        env=env,
        capture_output=True,
        text=True,
        check=check,
    )


def test_dry_run_prints_structure_and_ground_truth(tmp_path: Path) -> None:
    root = Path(__file__).resolve().parents[1]
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"\x00" * 10_000)

    proc = _run_cli(root, ["--source", str(source), "--layout", "2,F,0,1", "--dry-run"])
    payload = json.loads(proc.stdout)

    assert payload["mode"] == "dry-run"
    assert payload["total_bytes"] == 10_000 + 4096
    assert [rec["kind"] for rec in payload["structure"]] == [
        "source_chunk",
        "filler",
        "source_chunk",
        "source_chunk",
    ]
    assert [rec["sourceIndex"] for rec in payload["structure"]] == [2, None, 0, 1]
    frags = payload["ground_truth"]
    assert [(f["start_offset"], f["end_offset"]) for f in frags] == [(0, 1808), (5904, 14096)]
    assert frags[0]["original_start"] == 8192


def test_bad_layout_exits_with_error(tmp_path: Path) -> None:
    root = Path(__file__).resolve().parents[1]
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"\x00" * 10_000)

    proc = _run_cli(root, ["--source", str(source), "--layout", "0,1", "--dry-run"], check=False)
    assert proc.returncode == 2
    assert "layout must list every chunk" in proc.stderr


def test_unreachable_service_reports_failure(tmp_path: Path) -> None:
    root = Path(__file__).resolve().parents[1]
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"\x00" * 5000)

    proc = _run_cli(
        root,
        ["--source", str(source), "--report-dir", str(tmp_path / "runs")],
        check=False,
    )
    assert proc.returncode == 1
    payload = json.loads(proc.stdout)
    assert payload["success"] is False
    assert "Cannot connect" in payload["error"]
    assert not (tmp_path / "runs").exists()


def test_health_mode_offline(tmp_path: Path) -> None:
    root = Path(__file__).resolve().parents[1]
    proc = _run_cli(root, ["--mode", "health"], check=False)
    assert proc.returncode == 1
    payload = json.loads(proc.stdout)
    assert payload["online"] is False
    assert payload["label"] == "Backend Offline"


_ANALYSIS_RESULT = {
    "success": True,
    "results": [
        {
            "filename": "photo.jpg",
            "totalFragments": 1,
            "totalDetectedFragments": 1,
            "matchedFragments": 1,
            "fragmentComparisons": [
                {
                    "actualFragmentNumber": 1,
                    "actualStartOffset": 0,
                    "actualEndOffset": 5000,
                    "detectedStartOffset": 0,
                    "detectedEndOffset": 5000,
                    "startAccuracy": "100.00%",
                    "endAccuracy": "97.50%",
                }
            ],
        }
    ],
}


class _AnalysisHandler(BaseHTTPRequestHandler):
    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length") or 0)
        self.rfile.read(length)
        body = json.dumps(_ANALYSIS_RESULT).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        pass


@pytest.fixture
def service_url() -> Iterator[str]:
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _AnalysisHandler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{httpd.server_address[1]}/api"
    finally:
        httpd.shutdown()
        httpd.server_close()


@pytest.mark.parametrize("previous", ["missing", "corrupt"])
def test_unreadable_previous_report_keeps_run_report(
    tmp_path: Path, service_url: str, previous: str
) -> None:
    root = Path(__file__).resolve().parents[1]
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"\x00" * 5000)
    previous_path = tmp_path / "previous.json"
    if previous == "corrupt":
        previous_path.write_text("{not json", encoding="utf-8")

    runs = tmp_path / "runs"
    proc = _run_cli(
        root,
        [
            "--source",
            str(source),
            "--report-dir",
            str(runs),
            "--previous-report",
            str(previous_path),
        ],
        check=False,
        service_url=service_url,
    )
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)
    assert payload["success"] is True
    assert "comparison" not in payload
    assert payload["comparison_error"]
    assert "Could not load previous report" in proc.stderr

    report = runs / "run_report.json"
    assert report.exists()
    assert payload["report_path"] == str(report)
    assert json.loads(report.read_text(encoding="utf-8"))["run_id"] == payload["run_id"]
    assert payload["summary"]["avg_all_end_accuracy"] == 97.5


def test_previous_report_is_compared(tmp_path: Path, service_url: str) -> None:
    root = Path(__file__).resolve().parents[1]
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"\x00" * 5000)
    runs = tmp_path / "runs"
    args = ["--source", str(source), "--report-dir", str(runs)]

    _run_cli(root, args, service_url=service_url)
    previous = tmp_path / "previous.json"
    previous.write_bytes((runs / "run_report.json").read_bytes())

    proc = _run_cli(root, [*args, "--previous-report", str(previous)], service_url=service_url)
    payload = json.loads(proc.stdout)
    assert "comparison_error" not in payload
    assert isinstance(payload["comparison"], dict)
