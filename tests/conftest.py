from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolate_state_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    state_dir = tmp_path / "state"
    monkeypatch.setenv("MEMORYSTACK_STATE_DIR", str(state_dir))
    monkeypatch.setenv("MEMORYSTACK_CONFIG", str(tmp_path / "settings.json"))
    for name in (
        "MEMORYSTACK_API_KEY",
        "MEMORYSTACK_DEBUG",
        "MEMORYSTACK_BASE_URL",
        "MEMORYSTACK_CAPTURE_MODE",
        "MEMORYSTACK_TURNS_BEFORE",
        "MEMORYSTACK_PROJECT",
    ):
        monkeypatch.delenv(name, raising=False)
    return state_dir
