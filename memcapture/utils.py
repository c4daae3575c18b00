from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Outcome(Generic[T]):
    value: T
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def best_effort(action: Callable[[], T], default: T, *, label: str) -> Outcome[T]:
    """Run action; on failure log at debug level and hand back the default."""

    try:
        return Outcome(action())
    except Exception as exc:
        logger.debug("%s failed: %s", label, exc, exc_info=exc)
        return Outcome(default, exc)


def resolve_project_name(cwd: str, override: str | None = None) -> str:
    if override is not None and override.strip():
        return override.strip()

    package_json = Path(cwd) / "package.json"
    if package_json.is_file():
        try:
            data = json.loads(package_json.read_text())
        except (OSError, ValueError):
            data = None
        if isinstance(data, dict):
            name = data.get("name")
            if isinstance(name, str) and name.strip():
                return name.strip()

    return Path(os.path.abspath(cwd)).name or "claude-code"
