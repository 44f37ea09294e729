"""HTTP client for the external Analysis Service.

The service fragments the submitted file, runs boundary detection, and
returns per-image results. Every call is a single blocking request; no
client-side timeout is applied unless one is configured.

Parameters
----------
base_url:
    Service root, e.g. ``http://localhost:8080/api``.
timeout:
    Optional socket timeout in seconds.
opener:
    Callable with the ``urllib.request.urlopen`` signature; injectable for
    tests.
"""
from __future__ import annotations

import logging
import mimetypes
import urllib.error
import urllib.request
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson

from fraglab.errors import InvalidInputError, ServiceError, ServiceUnavailableError
from fraglab.wire import WireSegment, encode_structure

log = logging.getLogger(__name__)

INSERTION_SIZE_CLASSES_KB: tuple[int, ...] = (0, 4, 8)

type FormFile = tuple[str, str, bytes]


@dataclass(frozen=True, slots=True)
class AnalysisResponse:
    success: bool
    results: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    total_images: int | None = None


@dataclass(frozen=True, slots=True)
class JpegInfo:
    """Structural hints reported for one image; displayed, never enforced."""

    entropy_start: int | None
    entropy_end: int | None
    header_end_block: int | None
    safe_noise_start_block: int | None

    def as_dict(self) -> dict[str, int | None]:
        return {
            "entropy_start": self.entropy_start,
            "entropy_end": self.entropy_end,
            "header_end_block": self.header_end_block,
            "safe_noise_start_block": self.safe_noise_start_block,
        }


class AnalysisServiceClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = None,
        opener: Callable[..., Any] | None = None,
    ) -> None:
        if not base_url.strip():
            raise InvalidInputError("base_url cannot be empty")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._opener = opener or urllib.request.urlopen

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------
    def health(self) -> str:
        """Return the service name reported by ``GET /health``."""
        payload = self._request("GET", "/health", headers={"Accept": "application/json"})
        return str(payload.get("service") or "Backend Running")

    def analyze(
        self,
        files: Sequence[Path],
        *,
        fragment: bool = True,
        insertion_size_kb: int = 0,
    ) -> AnalysisResponse:
        """Fragment (optionally) and analyze one or more files."""
        if not files:
            raise InvalidInputError("at least one file is required")
        if insertion_size_kb not in INSERTION_SIZE_CLASSES_KB:
            raise InvalidInputError(
                f"insertion_size_kb must be one of {INSERTION_SIZE_CLASSES_KB}, got {insertion_size_kb}"
            )
        body, content_type = encode_multipart(
            fields=[
                ("fragment", _form_bool(fragment)),
                ("insertionSize", str(insertion_size_kb)),
            ],
            files=[_read_form_file("files", path) for path in files],
        )
        return self._analysis("/analyze", body, content_type)

    def analyze_custom(self, file: Path, structure: Iterable[WireSegment]) -> AnalysisResponse:
        """Submit one file with a composed segment structure."""
        body, content_type = encode_multipart(
            fields=[
                ("fragment", "true"),
                ("structure", encode_structure(structure).decode("utf-8")),
            ],
            files=[_read_form_file("file", file)],
        )
        return self._analysis("/analyze-custom", body, content_type)

    def reanalyze(self, filenames: Sequence[str]) -> AnalysisResponse:
        """Re-run detection on previously fragmented files."""
        if not filenames:
            raise InvalidInputError("no filenames to re-analyze")
        body = orjson.dumps({"filenames": list(filenames)})
        return self._analysis("/reanalyze", body, "application/json")

    def jpeg_info(self, file: Path) -> JpegInfo:
        body, content_type = encode_multipart(fields=[], files=[_read_form_file("file", file)])
        payload = self._request("POST", "/jpeg-info", data=body, headers={"Content-Type": content_type})
        _raise_for_failure(payload)
        return JpegInfo(
            entropy_start=_opt_int(payload.get("entropyStart")),
            entropy_end=_opt_int(payload.get("entropyEnd")),
            header_end_block=_opt_int(payload.get("headerEndBlock")),
            safe_noise_start_block=_opt_int(payload.get("safeNoiseStartBlock")),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _analysis(self, path: str, body: bytes, content_type: str) -> AnalysisResponse:
        payload = self._request("POST", path, data=body, headers={"Content-Type": content_type})
        _raise_for_failure(payload)
        results = payload.get("results")
        total = payload.get("totalImages")
        return AnalysisResponse(
            success=True,
            results=[r for r in results if isinstance(r, dict)] if isinstance(results, list) else [],
            error=None,
            total_images=total if isinstance(total, int) else None,
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        req = urllib.request.Request(url, data=data, headers=headers or {}, method=method)
        kwargs: dict[str, Any] = {}
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        log.debug("%s %s (%d bytes)", method, url, len(data or b""))
        try:
            with self._opener(req, **kwargs) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            message = _error_message(exc) or f"Server error: {exc.code}"
            log.warning("%s %s failed with HTTP %d: %s", method, url, exc.code, message)
            raise ServiceError(message, status=exc.code) from exc
        except (urllib.error.URLError, OSError) as exc:
            log.warning("%s %s unreachable: %s", method, url, exc)
            raise ServiceUnavailableError(f"Cannot connect to analysis service at {url}: {exc}") from exc

        try:
            payload = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise ServiceError(f"Invalid JSON from {url}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ServiceError(f"Unexpected response shape from {url}")
        return payload


def encode_multipart(
    *,
    fields: Iterable[tuple[str, str]],
    files: Iterable[FormFile],
) -> tuple[bytes, str]:
    """Encode ``multipart/form-data``; returns the body and its content type."""
    boundary = f"fraglab-{uuid.uuid4().hex}"
    parts: list[bytes] = []
    for name, value in fields:
        parts.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            ).encode("utf-8")
            + value.encode("utf-8")
            + b"\r\n"
        )
    for name, filename, content in files:
        ctype = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        parts.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                f"Content-Type: {ctype}\r\n\r\n"
            ).encode("utf-8")
            + content
            + b"\r\n"
        )
    parts.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(parts), f"multipart/form-data; boundary={boundary}"


def _read_form_file(field_name: str, path: Path) -> FormFile:
    return field_name, path.name, path.read_bytes()


def _form_bool(value: bool) -> str:
    return "true" if value else "false"


def _raise_for_failure(payload: dict[str, Any]) -> None:
    if payload.get("success") is False:
        raise ServiceError(str(payload.get("error") or "Unknown error"))


def _error_message(exc: urllib.error.HTTPError) -> str | None:
    try:
        payload = orjson.loads(exc.read() or b"{}")
    except (orjson.JSONDecodeError, OSError):
        return None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return None


def _opt_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
