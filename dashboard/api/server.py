"""FastAPI server for the Fragment Composer.

Exposes the composition session as JSON endpoints for the browser frontend.
The frontend renders ``GET /api/structure`` and sends discrete drop decisions
(target segment + side); it never holds structural state of its own.

Usage:
    cd dashboard
    PYTHONPATH=../src uvicorn api.server:app --reload --port 8000
"""
from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Literal, NoReturn

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

# Add fraglab src to path so the server runs from a plain checkout
_fraglab_src = Path(__file__).resolve().parents[2] / "src"
if str(_fraglab_src) not in sys.path:
    sys.path.insert(0, str(_fraglab_src))

from fraglab.config import Settings  # noqa: E402
from fraglab.errors import (  # noqa: E402
    FragLabError,
    InvalidOperationError,
    NotFoundError,
)
from fraglab.segments import DEFAULT_FILLER_VARIANT, FILLER  # noqa: E402
from fraglab.session import CompositionSession, SubmissionOutcome  # noqa: E402
from fraglab.wire import serialize_structure  # noqa: E402

# ---------------------------------------------------------------------------
# Globals
#
# The session is mutated only from the event loop thread. Blocking service
# calls run in a worker thread while holding _session_lock, so structure
# edits wait for an in-flight submission instead of interleaving with it.
# ---------------------------------------------------------------------------
_session: CompositionSession | None = None
_session_lock = asyncio.Lock()


def _get_session() -> CompositionSession:
    """Get the composition session, raising 503 if not available."""
    if _session is None:
        raise HTTPException(status_code=503, detail="Composer session not initialized")
    return _session


def _ensure_idle(session: CompositionSession) -> None:
    """Reject a submission with 409 while another request holds the session."""
    if session.pending:
        raise HTTPException(status_code=409, detail="A submission is already pending")
    if _session_lock.locked():
        raise HTTPException(status_code=409, detail="Composer session is busy")


def _raise_http(exc: FragLabError) -> NoReturn:
    if isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, InvalidOperationError):
        status = 409
    else:
        status = 400
    raise HTTPException(status_code=status, detail=str(exc)) from exc


def _structure_payload(session: CompositionSession) -> dict[str, Any]:
    model = session.model
    return {
        "source": session.source_path.name if session.source_path else None,
        "chunk_size": model.chunk_size,
        "filler_size": model.filler_size,
        "source_bytes": model.source_bytes,
        "total_bytes": model.total_bytes,
        "segments": [seg.as_dict() for seg in model.to_sequence()],
        "submit_enabled": session.submit_enabled,
        "last_error": session.last_error,
    }


def _outcome_payload(outcome: SubmissionOutcome) -> dict[str, Any]:
    if not outcome.ok:
        raise HTTPException(status_code=502, detail=outcome.error or "Analysis failed")
    return {"success": True, **outcome.as_dict()}


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    global _session  # noqa: PLW0603
    try:
        settings = Settings.from_env()
    except FragLabError as e:
        print(f"[composer] Warning: invalid settings ({e}); using defaults")
        settings = Settings()
    _session = CompositionSession(settings)
    print(f"[composer] Analysis service: {settings.service_url}")
    yield
    _session = None


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Fragment Composer API",
    version="0.1.0",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------
class SourceRequest(BaseModel):
    path: str = Field(min_length=1)


class MoveRequest(BaseModel):
    segment_id: str
    target_id: str
    side: Literal["before", "after"] = "before"


class InsertFillerRequest(BaseModel):
    variant: str = DEFAULT_FILLER_VARIANT
    target_id: str | None = None
    side: Literal["before", "after"] = "after"
    at_index: int | None = Field(default=None, ge=0)


class AnalyzeRequest(BaseModel):
    paths: list[str] = Field(min_length=1)
    fragment: bool = True
    insertion_size_kb: Literal[0, 4, 8] = 0


# ---------------------------------------------------------------------------
# Routes: Health
# ---------------------------------------------------------------------------
@app.get("/api/health")
async def health():
    session = _get_session()
    status = await asyncio.to_thread(session.check_health)
    return {
        "status": "ok",
        "source_loaded": session.source_path is not None,
        "service_online": status.online,
        "service_label": status.label,
        "service_message": status.message,
    }


# ---------------------------------------------------------------------------
# Routes: Source
# ---------------------------------------------------------------------------
@app.post("/api/source")
async def select_source(req: SourceRequest):
    session = _get_session()
    path = Path(req.path).expanduser()
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"File not found: {req.path}")
    async with _session_lock:
        try:
            session.select_source(path)
        except FragLabError as e:
            _raise_http(e)
        return _structure_payload(session)


@app.delete("/api/source")
async def clear_source():
    session = _get_session()
    async with _session_lock:
        session.clear_source()
        return _structure_payload(session)


@app.post("/api/source/inspect")
async def inspect_source():
    session = _get_session()
    async with _session_lock:
        try:
            info = await asyncio.to_thread(session.inspect_source)
        except FragLabError as e:
            _raise_http(e)
    if info is None:
        raise HTTPException(status_code=502, detail=session.last_error or "Inspection failed")
    return info.as_dict()


# ---------------------------------------------------------------------------
# Routes: Structure
# ---------------------------------------------------------------------------
@app.get("/api/structure")
async def get_structure():
    return _structure_payload(_get_session())


@app.post("/api/structure/move")
async def move_segment(req: MoveRequest):
    session = _get_session()
    async with _session_lock:
        try:
            session.controller.begin_drag(req.segment_id)
            outcome = session.controller.drop(req.target_id, req.side)
        except FragLabError as e:
            session.controller.cancel()
            _raise_http(e)
        payload = _structure_payload(session)
        payload["action"] = outcome.action
        return payload


@app.post("/api/structure/fillers")
async def insert_filler(req: InsertFillerRequest):
    session = _get_session()
    async with _session_lock:
        try:
            if req.target_id is not None:
                session.controller.begin_palette_drag(FILLER, req.variant)
                seg = session.controller.drop(req.target_id, req.side).segment
            else:
                at_index = len(session.model) if req.at_index is None else req.at_index
                seg = session.model.insert_filler(req.variant, at_index)
        except FragLabError as e:
            session.controller.cancel()
            _raise_http(e)
        payload = _structure_payload(session)
        payload["inserted"] = seg.as_dict() if seg else None
        return payload


@app.delete("/api/structure/fillers/{filler_id}")
async def remove_filler(filler_id: str):
    session = _get_session()
    async with _session_lock:
        try:
            session.model.remove_filler(filler_id)
        except FragLabError as e:
            _raise_http(e)
        return _structure_payload(session)


@app.delete("/api/structure/fillers")
async def clear_fillers():
    session = _get_session()
    async with _session_lock:
        removed = session.model.clear_fillers()
        payload = _structure_payload(session)
        payload["removed"] = removed
        return payload


@app.get("/api/structure/wire")
async def get_wire_structure():
    session = _get_session()
    return {"structure": [rec.as_dict() for rec in serialize_structure(session.model)]}


@app.get("/api/structure/ground-truth")
async def get_ground_truth():
    session = _get_session()
    return {"fragments": [frag.as_dict() for frag in session.ground_truth()]}


# ---------------------------------------------------------------------------
# Routes: Submission
# ---------------------------------------------------------------------------
@app.post("/api/submit")
async def submit_structure():
    session = _get_session()
    _ensure_idle(session)
    async with _session_lock:
        try:
            outcome = await asyncio.to_thread(session.submit_custom)
        except FragLabError as e:
            _raise_http(e)
    return _outcome_payload(outcome)


@app.post("/api/analyze")
async def analyze_files(req: AnalyzeRequest):
    session = _get_session()
    paths = [Path(p).expanduser() for p in req.paths]
    missing = [str(p) for p in paths if not p.is_file()]
    if missing:
        raise HTTPException(status_code=404, detail=f"Files not found: {', '.join(missing)}")
    _ensure_idle(session)
    async with _session_lock:
        try:
            outcome = await asyncio.to_thread(
                session.analyze,
                paths,
                fragment=req.fragment,
                insertion_size_kb=req.insertion_size_kb,
            )
        except FragLabError as e:
            _raise_http(e)
    return _outcome_payload(outcome)


@app.post("/api/reanalyze")
async def reanalyze_files():
    session = _get_session()
    _ensure_idle(session)
    async with _session_lock:
        try:
            outcome = await asyncio.to_thread(session.reanalyze)
        except FragLabError as e:
            _raise_http(e)
    return _outcome_payload(outcome)
