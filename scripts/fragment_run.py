#!/usr/bin/env python3
"""Compose, submit, and reconcile a fragmentation run against the Analysis Service.

Modes:
- custom (default): chunk --source, apply --layout, submit the composition
- analyze: let the service fragment the given files (--insertion-size KB)
- reanalyze: re-run detection on previously fragmented file names
- health: report service availability

Usage:
    python3 scripts/fragment_run.py --source photo.jpg --layout "0,1,F,2,3" \
      --report-dir runs --previous-report runs/run_report.json

    python3 scripts/fragment_run.py --mode analyze a.jpg b.jpg --insertion-size 4

    python3 scripts/fragment_run.py --source photo.jpg --layout "0,F,1" --dry-run

Structured JSON output goes to stdout; human messages go to stderr.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import orjson

from fraglab.config import Settings
from fraglab.errors import FragLabError
from fraglab.layout import apply_layout, parse_layout
from fraglab.run_report import (
    build_run_report,
    compare_run_reports,
    generate_run_id,
    load_run_report,
    write_run_report,
)
from fraglab.session import CompositionSession, SubmissionOutcome
from fraglab.wire import serialize_structure

log = logging.getLogger("fragment_run")


def dump_json(obj: Any) -> None:
    sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2))
    sys.stdout.buffer.write(b"\n")


def _compose(session: CompositionSession, source: Path, layout: str | None) -> None:
    session.select_source(source)
    if layout:
        apply_layout(session.model, parse_layout(layout))
    log.info(
        "Composed %d segments (%d fillers, %d bytes)",
        len(session.model),
        len(session.model.fillers()),
        session.model.total_bytes,
    )


def _dry_run_payload(session: CompositionSession) -> dict[str, Any]:
    return {
        "mode": "dry-run",
        "source": str(session.source_path),
        "total_bytes": session.model.total_bytes,
        "structure": [rec.as_dict() for rec in serialize_structure(session.model)],
        "ground_truth": [frag.as_dict() for frag in session.ground_truth()],
    }


def _run(session: CompositionSession, args: argparse.Namespace) -> SubmissionOutcome:
    if args.mode == "analyze":
        return session.analyze(
            [Path(f) for f in args.files],
            fragment=not args.no_fragment,
            insertion_size_kb=args.insertion_size,
        )
    if args.mode == "reanalyze":
        session.last_analyzed = [Path(f).name for f in args.files]
        return session.reanalyze()
    return session.submit_custom()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a fragmentation/reconciliation pass.")
    parser.add_argument(
        "--mode",
        choices=("custom", "analyze", "reanalyze", "health"),
        default="custom",
        help="What to submit (default: custom composition).",
    )
    parser.add_argument("files", nargs="*", help="Files for analyze/reanalyze modes.")
    parser.add_argument("--source", type=Path, default=None, help="Source file for custom mode.")
    parser.add_argument(
        "--layout",
        default=None,
        help="Comma-separated layout, e.g. '0,1,F,2,F:zero_fill,3'. Default: chunks in order.",
    )
    parser.add_argument("--service-url", default=None, help="Analysis Service base URL.")
    parser.add_argument("--chunk-size", type=int, default=None, help="Source chunk size in bytes.")
    parser.add_argument("--filler-size", type=int, default=None, help="Filler size in bytes.")
    parser.add_argument(
        "--insertion-size",
        type=int,
        choices=(0, 4, 8),
        default=0,
        help="Filler size class in KB for analyze mode.",
    )
    parser.add_argument("--no-fragment", action="store_true", help="Analyze without fragmenting.")
    parser.add_argument("--dry-run", action="store_true", help="Print structure; do not submit.")
    parser.add_argument("--report-dir", type=Path, default=None, help="Directory for run reports.")
    parser.add_argument("--no-report", action="store_true", help="Do not write a run report.")
    parser.add_argument(
        "--previous-report",
        type=Path,
        default=None,
        help="Optional earlier run report to compare against.",
    )
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    try:
        settings = Settings.from_env().with_overrides(
            service_url=args.service_url,
            chunk_size=args.chunk_size,
            filler_size=args.filler_size,
            report_dir=args.report_dir,
        )
    except FragLabError as exc:
        log.error("Invalid settings: %s", exc)
        sys.exit(2)
    session = CompositionSession(settings)

    if args.mode == "health":
        status = session.check_health()
        dump_json({"online": status.online, "label": status.label, "message": status.message})
        sys.exit(0 if status.online else 1)

    try:
        if args.mode == "custom":
            if args.source is None:
                parser.error("--source is required in custom mode")
            _compose(session, args.source, args.layout)
            if args.dry_run:
                dump_json(_dry_run_payload(session))
                return
        elif not args.files:
            parser.error(f"{args.mode} mode requires at least one file")
        outcome = _run(session, args)
    except FragLabError as exc:
        log.error("%s", exc)
        sys.exit(2)

    if not outcome.ok:
        dump_json({"success": False, "error": outcome.error})
        sys.exit(1)

    run_id = generate_run_id()
    report = build_run_report(
        run_id=run_id,
        summary=outcome.summary,  # type: ignore[arg-type]
        images=outcome.images,
        mode=args.mode,
        source=str(args.source) if args.source else None,
        structure=outcome.structure,
        service_url=settings.service_url,
    )
    payload: dict[str, Any] = {"success": True, "run_id": run_id, "summary": report["summary"]}

    if not args.no_report:
        canonical, versioned = write_run_report(settings.report_dir, report)
        log.info("Run report written to %s", versioned)
        payload["report_path"] = str(canonical)
    if args.previous_report:
        try:
            previous = load_run_report(args.previous_report)
        except (OSError, ValueError) as exc:
            log.warning("Could not load previous report %s: %s", args.previous_report, exc)
            payload["comparison_error"] = str(exc)
        else:
            payload["comparison"] = compare_run_reports(report, previous)

    payload["images"] = report["images"]
    dump_json(payload)


if __name__ == "__main__":
    main()
