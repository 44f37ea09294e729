"""Environment-driven settings for the composer, the CLI, and the API."""
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from fraglab.errors import InvalidInputError

DEFAULT_SERVICE_URL = "http://localhost:8080/api"
DEFAULT_CHUNK_SIZE = 4096
DEFAULT_FILLER_SIZE = 4096
DEFAULT_REPORT_DIR = Path("runs")

ENV_PREFIX = "FRAGLAB_"


@dataclass(frozen=True, slots=True)
class Settings:
    service_url: str = DEFAULT_SERVICE_URL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    filler_size: int = DEFAULT_FILLER_SIZE
    timeout_sec: float | None = None
    report_dir: Path = DEFAULT_REPORT_DIR

    def __post_init__(self) -> None:
        if not self.service_url.strip():
            raise InvalidInputError("service_url cannot be empty")
        if self.chunk_size <= 0:
            raise InvalidInputError(f"chunk_size must be > 0, got {self.chunk_size}")
        if self.filler_size <= 0:
            raise InvalidInputError(f"filler_size must be > 0, got {self.filler_size}")
        if self.timeout_sec is not None and self.timeout_sec <= 0:
            raise InvalidInputError(f"timeout_sec must be > 0, got {self.timeout_sec}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``FRAGLAB_*`` variables, falling back to defaults."""
        env = os.environ if environ is None else environ

        def _get(name: str) -> str | None:
            raw = env.get(ENV_PREFIX + name, "").strip()
            return raw or None

        timeout_raw = _get("TIMEOUT")
        report_raw = _get("REPORT_DIR")
        return cls(
            service_url=_get("SERVICE_URL") or DEFAULT_SERVICE_URL,
            chunk_size=_parse_int("CHUNK_SIZE", _get("CHUNK_SIZE"), DEFAULT_CHUNK_SIZE),
            filler_size=_parse_int("FILLER_SIZE", _get("FILLER_SIZE"), DEFAULT_FILLER_SIZE),
            timeout_sec=_parse_float("TIMEOUT", timeout_raw) if timeout_raw else None,
            report_dir=Path(report_raw) if report_raw else DEFAULT_REPORT_DIR,
        )

    def with_overrides(self, **overrides: object) -> Settings:
        """Return a copy with non-None overrides applied (CLI flags)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def _parse_int(name: str, raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidInputError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise InvalidInputError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from exc
