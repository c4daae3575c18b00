from __future__ import annotations

import re
from pathlib import Path

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]")


def ensure_path(path: str | Path) -> Path:
    resolved = Path(path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


def safe_filename(name: str, *, fallback: str = "default") -> str:
    """Keep only characters that are safe in a state file name."""

    cleaned = _UNSAFE_NAME_RE.sub("_", name or "").strip("._")
    return cleaned or fallback
