"""File-system helpers for pipeline outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping


def ensure_parent(path: Path) -> Path:
    """Create the parent directory of ``path`` and return ``path``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write_json(path: Path, payload: Mapping[str, Any]) -> Path:
    path = ensure_parent(path)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


__all__ = ["ensure_parent", "write_json"]
