from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_timestamp(value: Any) -> str | None:
    """Normalize ``created_at`` to an ISO string; numeric values are epoch seconds or ms."""

    if isinstance(value, str):
        return value or None
    number = _as_float(value)
    if number is None:
        return None
    if abs(number) > 1e11:
        number /= 1000
    try:
        return dt.datetime.fromtimestamp(number, tz=dt.timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None


@dataclass
class MemoryRecord:
    content: str
    memory_type: str | None = None
    confidence: float | None = None
    importance_score: float | None = None
    created_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> MemoryRecord:
        metadata = item.get("metadata")
        memory_id = item.get("id")
        return cls(
            content=str(item.get("content") or item.get("memory") or ""),
            memory_type=item.get("memory_type") or item.get("memoryType"),
            confidence=_as_float(item.get("confidence")),
            importance_score=_as_float(item.get("importance_score")),
            created_at=_as_timestamp(item.get("created_at") or item.get("createdAt")),
            metadata=metadata if isinstance(metadata, dict) else {},
            id=str(memory_id) if memory_id is not None else None,
        )


@dataclass(frozen=True)
class AddResult:
    id: str | None
    count: int
    success: bool


@dataclass
class SearchResult:
    count: int
    results: list[MemoryRecord] = field(default_factory=list)


@dataclass
class Profile:
    personal: list[MemoryRecord] = field(default_factory=list)
    project: list[MemoryRecord] = field(default_factory=list)
    recent: list[MemoryRecord] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.personal) + len(self.project) + len(self.recent)

    @property
    def scoped_fetch_failed(self) -> bool:
        return {"personal", "project"} <= set(self.failures)
