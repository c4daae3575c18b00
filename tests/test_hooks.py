from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import Any

import pytest

from memcapture.client import MemoryStackError
from memcapture.config import MemcaptureConfig
from memcapture.hooks import HookContext, cursor_key, run_hook
from memcapture.session_state import InMemoryCursorStore, JsonCursorStore, SessionState
from memcapture.types import AddResult, MemoryRecord, Profile, SearchResult

NOW = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


class FakeClient:
    def __init__(self) -> None:
        self.added: list[dict[str, Any]] = []
        self.searches: list[dict[str, Any]] = []
        self.profile = Profile()
        self.search_results: list[MemoryRecord] = []
        self.fail_add = False
        self.closed = 0

    def add_memory(self, content: str, **kwargs: Any) -> AddResult:
        if self.fail_add:
            raise MemoryStackError("store down", status=503)
        self.added.append({"content": content, **kwargs})
        return AddResult(id="m1", count=1, success=True)

    def search(self, query: str, **kwargs: Any) -> SearchResult:
        self.searches.append({"query": query, **kwargs})
        return SearchResult(count=len(self.search_results), results=self.search_results)

    def get_profile(self) -> Profile:
        return self.profile

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def ctx(tmp_path: Path, client: FakeClient) -> HookContext:
    return HookContext(
        config=MemcaptureConfig(project="widgets"),
        api_key="ms_key",
        state=SessionState(tmp_path / "state"),
        client_factory=lambda cwd, project: client,  # type: ignore[arg-type,return-value]
        cursor_store=InMemoryCursorStore(),
        now=lambda: NOW,
    )


def _write_transcript(path: Path, *entries: dict[str, Any]) -> Path:
    path.write_text("\n".join(json.dumps(e) for e in entries) + "\n")
    return path


def test_cursor_key() -> None:
    assert cursor_key("widgets", "s1") == "widgets:s1"
    assert cursor_key("widgets", "") == "widgets"


def test_session_start_renders_profile(ctx: HookContext, client: FakeClient) -> None:
    client.profile = Profile(project=[MemoryRecord(content="We chose httpx because of sync")])
    output = run_hook("session-start", {"cwd": "/work/widgets"}, ctx)

    hook_output = output["hookSpecificOutput"]
    assert hook_output["hookEventName"] == "SessionStart"
    assert "## Architecture & Decisions" in hook_output["additionalContext"]
    assert client.closed == 1


def test_session_start_falls_back_to_flat_search(ctx: HookContext, client: FakeClient) -> None:
    client.profile = Profile(failures=["personal", "project", "recent"])
    client.search_results = [MemoryRecord(content="Deploy with make release")]
    output = run_hook("session-start", {"cwd": "/work/widgets"}, ctx)

    context = output["hookSpecificOutput"]["additionalContext"]
    assert "1. Deploy with make release" in context
    assert client.searches[0]["query"] == "widgets coding session context"
    assert client.searches[0]["limit"] == 5


def test_session_start_without_key(tmp_path: Path) -> None:
    ctx = HookContext(
        config=MemcaptureConfig(), api_key=None, state=SessionState(tmp_path), now=lambda: NOW
    )
    output = run_hook("session-start", {}, ctx)
    assert "Authentication required" in output["hookSpecificOutput"]["additionalContext"]


def test_session_start_with_numeric_project_setting(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text(json.dumps({"project": 123}))
    with pytest.warns(RuntimeWarning, match="project"):
        ctx = HookContext.from_env()
    assert ctx.project_name(str(tmp_path)) == "123"
    output = run_hook("session-start", {"cwd": str(tmp_path)}, ctx)
    assert "Authentication required" in output["hookSpecificOutput"]["additionalContext"]


def test_default_cursor_store_lives_in_state_dir(tmp_path: Path) -> None:
    ctx = HookContext(config=MemcaptureConfig(), api_key=None, state=SessionState(tmp_path))
    assert isinstance(ctx.cursors, JsonCursorStore)
    assert ctx.cursors.path == tmp_path / "capture-state.json"


def test_session_start_failure_returns_error_context(ctx: HookContext, client: FakeClient) -> None:
    def explode() -> Profile:
        raise RuntimeError("boom")

    client.get_profile = explode  # type: ignore[method-assign]
    output = run_hook("session-start", {}, ctx)
    context = output["hookSpecificOutput"]["additionalContext"]
    assert "Failed to load memories: boom" in context


def test_prompt_submit_flags_and_recalls(ctx: HookContext, client: FakeClient) -> None:
    client.search_results = [MemoryRecord(content="Tabs, not spaces")]
    output = run_hook(
        "user-prompt-submit",
        {"session_id": "s1", "prompt": "Remember this: what did I say about tabs?"},
        ctx,
    )

    assert output["hookSpecificOutput"]["hookEventName"] == "UserPromptSubmit"
    assert "1. Tabs, not spaces" in output["hookSpecificOutput"]["additionalContext"]
    assert client.searches[0]["limit"] == 3
    assert client.searches[0]["scope"] == "both"
    flags = ctx.state.flagged_prompts("s1")
    assert flags[0]["prompt"].startswith("Remember this")


def test_prompt_submit_without_signals_is_empty(ctx: HookContext, client: FakeClient) -> None:
    assert run_hook("user-prompt-submit", {"session_id": "s1", "prompt": "rename foo"}, ctx) == {}
    assert run_hook("user-prompt-submit", {"prompt": "   "}, ctx) == {}
    assert client.searches == []


def test_post_tool_use_records_activity_and_changes(ctx: HookContext) -> None:
    payload = {
        "session_id": "s1",
        "tool_name": "Edit",
        "tool_input": {"file_path": "/repo/src/db.py", "old_string": "a", "new_string": "b"},
        "tool_response": {"success": True},
    }
    assert run_hook("post-tool-use", payload, ctx) == {}

    activity = ctx.state.read_activity("s1")
    assert activity[0]["summary"] == "Edited src/db.py: 'a' → 'b'"
    assert activity[0]["file"] == "/repo/src/db.py"
    assert ctx.state.changed_files("s1") == ["/repo/src/db.py"]


def test_post_tool_use_skips_untracked_tools(ctx: HookContext) -> None:
    run_hook("post-tool-use", {"session_id": "s1", "tool_name": "Read", "tool_input": {}}, ctx)
    ctx.config.skip_tools = ["Bash"]
    run_hook("post-tool-use", {"session_id": "s1", "tool_name": "Bash", "tool_input": {}}, ctx)
    assert ctx.state.read_activity("s1") == []


def test_stop_captures_signal_turns(ctx: HookContext, client: FakeClient, tmp_path: Path) -> None:
    transcript = _write_transcript(
        tmp_path / "t.jsonl",
        {"role": "user", "content": "remember: the api key is sk-abcdefghijklmnop"},
        {"role": "assistant", "content": "Noted, I will keep that <private>hidden</private> in mind."},
    )
    payload = {"session_id": "s1", "transcript_path": str(transcript), "cwd": str(tmp_path)}
    assert run_hook("stop", payload, ctx) == {"continue": True}

    assert len(client.added) == 1
    added = client.added[0]
    assert added["event_type"] == "session_turn"
    assert added["capture_mode"] == "signal"
    assert added["memory_type"] == "knowledge"
    assert added["session_id"] == "s1"
    assert "sk-abcdefghijklmnop" not in added["content"]
    assert "[REDACTED]" in added["content"]
    assert "hidden" not in added["content"]
    assert ctx.cursors.get("widgets:s1") == 2

    assert run_hook("stop", payload, ctx) == {"continue": True}
    assert len(client.added) == 1


def test_stop_uses_flagged_prompts_as_keywords(
    ctx: HookContext, client: FakeClient, tmp_path: Path
) -> None:
    ctx.config.signal_keywords = []
    ctx.state.flag_prompt("s1", "keep the staging deploy steps handy", now=NOW)
    transcript = _write_transcript(
        tmp_path / "t.jsonl",
        {"role": "user", "content": "keep the staging deploy steps handy"},
        {"role": "assistant", "content": "Steps: build, push, migrate."},
    )
    run_hook("stop", {"session_id": "s1", "transcript_path": str(transcript)}, ctx)
    assert client.added[0]["capture_mode"] == "signal"


def test_stop_without_transcript_continues(ctx: HookContext, client: FakeClient) -> None:
    assert run_hook("stop", {"session_id": "s1"}, ctx) == {"continue": True}
    assert run_hook("stop", {"session_id": "s1", "transcript_path": "/nope.jsonl"}, ctx) == {
        "continue": True
    }
    assert client.added == []


def test_stop_survives_store_failure(ctx: HookContext, client: FakeClient, tmp_path: Path) -> None:
    client.fail_add = True
    transcript = _write_transcript(
        tmp_path / "t.jsonl",
        {"role": "user", "content": "remember that migrations run before deploys"},
        {"role": "assistant", "content": "Understood, migrations first."},
    )
    payload = {"session_id": "s1", "transcript_path": str(transcript)}
    assert run_hook("stop", payload, ctx) == {"continue": True}


def test_task_completed_submits_project_record(ctx: HookContext, client: FakeClient) -> None:
    ctx.state.track_file_change("s1", "src/upload.py", "Edit", now=NOW)
    ctx.state.append_activity("s1", {"summary": "Read src/upload.py"})
    ctx.state.append_activity("s1", {"summary": "Edited src/upload.py"})
    payload = {
        "session_id": "s1",
        "task_id": "t9",
        "task_subject": "Add upload retries",
        "teammate_name": "sam",
        "team_name": "storage",
    }
    assert run_hook("task-completed", payload, ctx) == {}

    added = client.added[0]
    assert added["scope"] == "project"
    assert added["event_type"] == "task-completion"
    assert added["metadata"] == {"task_id": "t9", "teammate": "sam", "team": "storage"}
    assert added["content"] == (
        "[Task Completed] Add upload retries\n"
        "Files modified: src/upload.py\n"
        "Approach: Edited src/upload.py\n"
        "Completed by: sam\n"
        "Team: storage\n"
        "Date: 2026-03-01"
    )


def test_task_completed_needs_subject(ctx: HookContext, client: FakeClient) -> None:
    assert run_hook("task-completed", {"session_id": "s1"}, ctx) == {}
    assert client.added == []


def test_subagent_stop_submits_summary(
    ctx: HookContext, client: FakeClient, tmp_path: Path
) -> None:
    transcript = _write_transcript(
        tmp_path / "agent.jsonl",
        {"role": "user", "content": "look around"},
        {"role": "assistant", "content": "The config loader lives in config.py."},
    )
    payload = {
        "agent_transcript_path": str(transcript),
        "agent_id": "a7",
        "agent_type": "explore",
    }
    assert run_hook("subagent-stop", payload, ctx) == {}

    added = client.added[0]
    assert added["content"].startswith("[Subagent:explore] (a7)")
    assert added["scope"] == "project"
    assert added["metadata"] == {"agent_id": "a7", "agent_type": "explore"}


def test_unknown_event_is_empty(ctx: HookContext) -> None:
    assert run_hook("pre-compact", {}, ctx) == {}
