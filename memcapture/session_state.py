from __future__ import annotations

import datetime as dt
import json
import logging
from pathlib import Path
from typing import Any, Protocol

from .fs_paths import ensure_path, safe_filename

logger = logging.getLogger(__name__)

MAX_FLAGS_PER_SESSION = 20
MAX_FLAGGED_PROMPT_CHARS = 200


def _now_iso(now: dt.datetime | None = None) -> str:
    return (now or dt.datetime.now(dt.timezone.utc)).isoformat()


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text())
    except (OSError, ValueError) as exc:
        logger.debug("state file %s unreadable: %s", path, exc)
        return default


def _write_json(path: Path, payload: Any) -> None:
    ensure_path(path).write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


class CursorStore(Protocol):
    def get(self, key: str) -> int: ...

    def advance(self, key: str, index: int) -> int: ...


class InMemoryCursorStore:
    def __init__(self, initial: dict[str, int] | None = None) -> None:
        self._cursors: dict[str, int] = dict(initial or {})

    def get(self, key: str) -> int:
        return self._cursors.get(key, 0)

    def advance(self, key: str, index: int) -> int:
        current = max(self.get(key), index)
        self._cursors[key] = current
        return current


class JsonCursorStore:
    """Capture cursors kept in one JSON file, keyed by cursor key.

    Whole-file read-modify-write with no locking; two writers on the same
    key keep the last write.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, Any]:
        data = _read_json(self.path, {})
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> int:
        entry = self._load().get(key)
        if not isinstance(entry, dict):
            return 0
        value = entry.get("last_captured_index")
        return value if isinstance(value, int) and value > 0 else 0

    def advance(self, key: str, index: int) -> int:
        data = self._load()
        entry = data.get(key)
        if not isinstance(entry, dict):
            entry = {}
        previous = entry.get("last_captured_index")
        previous = previous if isinstance(previous, int) else 0
        current = max(previous, index)
        entry["last_captured_index"] = current
        entry["updated_at"] = _now_iso()
        data[key] = entry
        _write_json(self.path, data)
        return current


class SessionState:
    """Per-session files written by the tool and prompt hooks."""

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir

    def cursor_store(self) -> JsonCursorStore:
        return JsonCursorStore(self.state_dir / "capture-state.json")

    def activity_path(self, session_id: str) -> Path:
        return self.state_dir / f"activity-{safe_filename(session_id)}.jsonl"

    def changes_path(self, session_id: str) -> Path:
        return self.state_dir / f"changes-{safe_filename(session_id)}.json"

    def flags_path(self, session_id: str) -> Path:
        return self.state_dir / f"flagged-{safe_filename(session_id)}.json"

    def append_activity(self, session_id: str, entry: dict[str, Any]) -> None:
        path = ensure_path(self.activity_path(session_id))
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def read_activity(self, session_id: str) -> list[dict[str, Any]]:
        path = self.activity_path(session_id)
        if not path.exists():
            return []
        entries: list[dict[str, Any]] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except ValueError:
                continue
            if isinstance(entry, dict):
                entries.append(entry)
        return entries

    def highlights(self, session_id: str, limit: int = 8) -> list[str]:
        """Recent activity summaries, skipping read-only lookups."""

        summaries: list[str] = []
        for entry in self.read_activity(session_id):
            summary = str(entry.get("summary") or "")
            if not summary or summary.startswith(("Read ", "Listed ", "Searched ", "Grep ")):
                continue
            summaries.append(summary)
        return summaries[-limit:] if limit > 0 else []

    def track_file_change(
        self, session_id: str, file_path: str, tool_name: str, *, now: dt.datetime | None = None
    ) -> dict[str, Any]:
        path = self.changes_path(session_id)
        changes = _read_json(path, {})
        if not isinstance(changes, dict):
            changes = {}
        stamp = _now_iso(now)
        entry = changes.get(file_path)
        if not isinstance(entry, dict):
            entry = {"edits": 0, "writes": 0, "first_seen": stamp}
        if "edit" in tool_name.lower():
            entry["edits"] = int(entry.get("edits") or 0) + 1
        else:
            entry["writes"] = int(entry.get("writes") or 0) + 1
        entry["last_seen"] = stamp
        changes[file_path] = entry
        _write_json(path, changes)
        return entry

    def changed_files(self, session_id: str, limit: int = 15) -> list[str]:
        changes = _read_json(self.changes_path(session_id), {})
        if not isinstance(changes, dict):
            return []
        return list(changes)[:limit]

    def flag_prompt(
        self, session_id: str, prompt: str, *, now: dt.datetime | None = None
    ) -> list[dict[str, Any]]:
        path = self.flags_path(session_id)
        flags = _read_json(path, [])
        if not isinstance(flags, list):
            flags = []
        flags.append(
            {
                "timestamp": _now_iso(now),
                "prompt": prompt[:MAX_FLAGGED_PROMPT_CHARS],
                "type": "user-signal",
            }
        )
        flags = flags[-MAX_FLAGS_PER_SESSION:]
        _write_json(path, flags)
        return flags

    def flagged_prompts(self, session_id: str) -> list[dict[str, Any]]:
        flags = _read_json(self.flags_path(session_id), [])
        return [flag for flag in flags if isinstance(flag, dict)] if isinstance(flags, list) else []
