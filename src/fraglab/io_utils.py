"""I/O utilities for JSON files.

All encoding goes through orjson; helpers accept dataclass instances and
``Path`` objects transparently.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


def dumps(obj: Any, *, pretty: bool = False) -> bytes:
    """Encode an object as JSON bytes (sorted keys, optional indentation)."""
    opts = orjson.OPT_SORT_KEYS
    if pretty:
        opts |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, option=opts, default=_default)


def load_json(path: Path) -> Any:
    """Load JSON from a file."""
    return orjson.loads(path.read_bytes())


def save_json(obj: Any, path: Path, *, pretty: bool = True) -> None:
    """Save an object as JSON, creating parent directories as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dumps(obj, pretty=pretty))


def _default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")
