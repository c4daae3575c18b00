from __future__ import annotations

import contextlib
import datetime as dt
import json
import logging
import os
import sys
import warnings
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from . import __version__

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path("~/.memorystack-claude").expanduser()
DEFAULT_BASE_URL = "https://memorystack.app"
API_KEY_ENV = "MEMORYSTACK_API_KEY"
CAPTURE_MODES = ("smart", "signal", "full")

DEFAULT_SIGNAL_KEYWORDS: tuple[str, ...] = (
    "remember",
    "important",
    "note",
    "architecture",
    "decision",
    "convention",
    "bug",
    "fix",
    "pattern",
    "refactor",
    "todo",
    "learned",
    "figured out",
    "design",
    "tradeoff",
    "prefer",
)

CONFIG_ENV_OVERRIDES = {
    "base_url": "MEMORYSTACK_BASE_URL",
    "debug": "MEMORYSTACK_DEBUG",
    "capture_mode": "MEMORYSTACK_CAPTURE_MODE",
    "turns_before": "MEMORYSTACK_TURNS_BEFORE",
    "state_dir": "MEMORYSTACK_STATE_DIR",
    "project": "MEMORYSTACK_PROJECT",
}

# camelCase keys written by the Node plugin settings file.
CONFIG_KEY_ALIASES = {
    "baseUrl": "base_url",
    "captureMode": "capture_mode",
    "captureTools": "capture_tools",
    "skipTools": "skip_tools",
    "signalKeywords": "signal_keywords",
    "turnsBefore": "turns_before",
    "minSignalEntries": "min_signal_entries",
    "minFullEntries": "min_full_entries",
    "maxContextResults": "max_context_results",
    "sourceVersion": "source_version",
    "stateDir": "state_dir",
    "categoryMarkers": "category_markers",
}

_INT_KEYS = {"turns_before", "min_signal_entries", "min_full_entries", "max_context_results"}
_BOOL_KEYS = {"debug"}
_LIST_KEYS = {"capture_tools", "skip_tools", "signal_keywords"}
_STR_KEYS = {"base_url", "source_version", "state_dir", "project"}


def get_state_dir() -> Path:
    return Path(os.getenv("MEMORYSTACK_STATE_DIR") or DEFAULT_STATE_DIR).expanduser()


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("MEMORYSTACK_CONFIG") or get_state_dir() / "settings.json")
    return candidate.expanduser()


def strip_json_comments(text: str) -> str:
    lines: list[str] = []
    for line in text.splitlines():
        result: list[str] = []
        in_string = False
        escape_next = False
        i = 0
        while i < len(line):
            char = line[i]
            if escape_next:
                result.append(char)
                escape_next = False
            elif char == "\\" and in_string:
                result.append(char)
                escape_next = True
            elif char == '"':
                in_string = not in_string
                result.append(char)
            elif not in_string and line.startswith("//", i):
                break
            else:
                result.append(char)
            i += 1
        lines.append("".join(result))
    return "\n".join(lines)


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        try:
            data = json.loads(strip_json_comments(raw))
        except json.JSONDecodeError as exc:
            raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class MemcaptureConfig:
    base_url: str = DEFAULT_BASE_URL
    debug: bool = False
    capture_mode: str = "smart"
    capture_tools: list[str] = field(default_factory=lambda: ["Edit", "Write", "Bash", "Task"])
    skip_tools: list[str] = field(default_factory=lambda: ["Read", "Glob", "Grep"])
    signal_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_SIGNAL_KEYWORDS))
    turns_before: int = 1
    min_signal_entries: int = 2
    min_full_entries: int = 3
    max_context_results: int = 5
    source_version: str = __version__
    state_dir: str | None = None
    project: str | None = None

    # Extra markers per classifier category, merged into the built-in rules.
    category_markers: dict[str, list[str]] = field(default_factory=dict)

    def resolved_state_dir(self) -> Path:
        if self.state_dir:
            return Path(self.state_dir).expanduser()
        return get_state_dir()


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _coerce_str(value: object, default: str | None, *, key: str) -> str | None:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        warnings.warn(f"Expected a string for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return str(value)
    warnings.warn(f"Invalid string for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _coerce_str_list(value: object, *, key: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    warnings.warn(f"Invalid list for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


def _coerce_markers(value: object) -> dict[str, list[str]] | None:
    if not isinstance(value, dict):
        warnings.warn(f"Invalid category_markers: {value!r}", RuntimeWarning, stacklevel=2)
        return None
    markers: dict[str, list[str]] = {}
    for category, items in value.items():
        parsed = _coerce_str_list(items, key=f"category_markers.{category}")
        if parsed:
            markers[str(category)] = parsed
    return markers


def load_config(path: Path | None = None) -> MemcaptureConfig:
    cfg = MemcaptureConfig()
    try:
        data = read_config_file(path)
    except (OSError, ValueError) as exc:
        logger.debug("settings file ignored: %s", exc)
        data = {}
    cfg = _apply_dict(cfg, data)
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: MemcaptureConfig, data: dict[str, Any]) -> MemcaptureConfig:
    known = {f.name for f in fields(MemcaptureConfig)}
    for raw_key, value in data.items():
        key = CONFIG_KEY_ALIASES.get(raw_key, raw_key)
        if key not in known:
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
        elif key in _BOOL_KEYS:
            setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
        elif key in _LIST_KEYS:
            parsed = _coerce_str_list(value, key=key)
            if parsed is not None:
                setattr(cfg, key, parsed)
        elif key == "category_markers":
            markers = _coerce_markers(value)
            if markers is not None:
                cfg.category_markers = markers
        elif key == "capture_mode":
            mode = _coerce_str(value, cfg.capture_mode, key=key)
            if mode in CAPTURE_MODES:
                cfg.capture_mode = mode
            else:
                warnings.warn(f"Invalid capture_mode: {mode!r}", RuntimeWarning, stacklevel=2)
        elif key in _STR_KEYS:
            setattr(cfg, key, _coerce_str(value, getattr(cfg, key), key=key))
    return cfg


def load_api_key(cfg: MemcaptureConfig | None = None) -> str | None:
    """Return the store credential from the environment, then the credentials file."""

    env_key = os.getenv(API_KEY_ENV)
    if env_key and env_key.strip():
        return env_key.strip()

    state_dir = cfg.resolved_state_dir() if cfg else get_state_dir()
    path = state_dir / "credentials.json"
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as exc:
        logger.debug("credentials file unreadable: %s", exc)
        return None
    if not isinstance(data, dict):
        return None
    key = data.get("api_key") or data.get("apiKey")
    if isinstance(key, str) and key.strip():
        return key.strip()
    return None


def save_api_key(api_key: str, cfg: MemcaptureConfig | None = None) -> Path:
    state_dir = cfg.resolved_state_dir() if cfg else get_state_dir()
    path = state_dir / "credentials.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "api_key": api_key,
        "saved_at": dt.datetime.now(dt.timezone.utc).isoformat(),
    }
    path.write_text(json.dumps(payload, indent=2) + "\n")
    with contextlib.suppress(OSError):
        path.chmod(0o600)
    return path


def configure_logging(debug: bool) -> None:
    """Send package logs to stderr when debug is on; stdout stays reserved for hook output."""

    if not debug:
        return
    root = logging.getLogger("memcapture")
    if any(getattr(handler, "_memcapture", False) for handler in root.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("[memcapture] %(levelname)s %(name)s: %(message)s"))
    handler._memcapture = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
