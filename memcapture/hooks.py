from __future__ import annotations

import datetime as dt
import logging
import os
from collections.abc import Callable
from contextlib import closing
from dataclasses import InitVar, dataclass, field
from pathlib import Path
from typing import Any

from .classifier import MemoryClassifier
from .client import MemoryStackClient
from .compress import compress_observation, observation_metadata
from .config import MemcaptureConfig, configure_logging, load_api_key, load_config
from .context import (
    format_auth_required,
    format_empty_context,
    format_error_context,
    format_profile_context,
    format_recall_context,
    format_search_context,
)
from .extraction import extraction_context_for
from .ingest.capture import CAPTURE_MODES, MODE_SIGNAL, CaptureOptions
from .ingest.records import build_subagent_summary, build_task_record, tail_events
from .ingest.signals import has_save_signal, has_search_signal, should_enrich_prompt
from .redaction import sanitize_for_storage
from .scope import ScopeResolver
from .session_state import CursorStore, SessionState
from .types import AddResult
from .utils import Outcome, best_effort, resolve_project_name

logger = logging.getLogger(__name__)

TRACKED_TOOLS = frozenset(
    {
        "bash",
        "edit",
        "editfile",
        "edit_file",
        "multiedit",
        "write",
        "writefile",
        "write_file",
        "task",
        "webfetch",
        "web_fetch",
        "websearch",
        "web_search",
    }
)
FILE_MUTATION_TOOLS = frozenset(
    {"edit", "editfile", "edit_file", "multiedit", "write", "writefile", "write_file"}
)

STOP_OK: dict[str, Any] = {"continue": True}

ClientFactory = Callable[[str, str], MemoryStackClient]


def cursor_key(project: str, session_id: str | None) -> str:
    return f"{project}:{session_id}" if session_id else project


def context_output(host_event: str, text: str) -> dict[str, Any]:
    return {"hookSpecificOutput": {"hookEventName": host_event, "additionalContext": text}}


@dataclass
class HookContext:
    config: MemcaptureConfig
    api_key: str | None
    state: SessionState
    client_factory: ClientFactory | None = None
    cursor_store: InitVar[CursorStore | None] = None
    now: Callable[[], dt.datetime] = field(default=lambda: dt.datetime.now(dt.timezone.utc))
    cursors: CursorStore = field(init=False)

    def __post_init__(self, cursor_store: CursorStore | None) -> None:
        self.cursors = cursor_store if cursor_store is not None else self.state.cursor_store()

    @classmethod
    def from_env(cls) -> HookContext:
        cfg = load_config()
        configure_logging(cfg.debug)
        return cls(config=cfg, api_key=load_api_key(cfg), state=SessionState(cfg.resolved_state_dir()))

    def project_name(self, cwd: str) -> str:
        return resolve_project_name(cwd, self.config.project)

    def client(self, cwd: str, project: str) -> MemoryStackClient:
        if self.client_factory is not None:
            return self.client_factory(cwd, project)
        if not self.api_key:
            raise RuntimeError("MEMORYSTACK_API_KEY not configured")
        return MemoryStackClient(
            self.api_key,
            base_url=self.config.base_url,
            project_name=project,
            scope=ScopeResolver(cwd, project),
            source_version=self.config.source_version,
        )

    def capture_options(self, extra_keywords: list[str] | None = None) -> CaptureOptions:
        return CaptureOptions(
            signal_keywords=[*self.config.signal_keywords, *(extra_keywords or [])],
            turns_before=self.config.turns_before,
            capture_tools=list(self.config.capture_tools),
            min_signal_entries=self.config.min_signal_entries,
            min_full_entries=self.config.min_full_entries,
        )


def submit(client: MemoryStackClient, content: str, **kwargs: Any) -> Outcome[AddResult | None]:
    text = sanitize_for_storage(content)
    if not text:
        return Outcome(None)
    outcome = best_effort(lambda: client.add_memory(text, **kwargs), None, label="add_memory")
    if outcome.value is not None:
        logger.debug(
            "stored %s (%d chars, %d memories)",
            kwargs.get("event_type"),
            len(text),
            outcome.value.count,
        )
    return outcome


def _cwd(payload: dict[str, Any]) -> str:
    return str(payload.get("cwd") or os.getcwd())


def _input_file_path(tool_input: Any) -> str | None:
    if not isinstance(tool_input, dict):
        return None
    for key in ("file_path", "filePath", "path", "file"):
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _read_text(path_value: Any) -> str | None:
    if not path_value:
        return None
    path = Path(str(path_value)).expanduser()
    return best_effort(lambda: path.read_text(encoding="utf-8"), None, label=f"read {path}").value


def handle_session_start(payload: dict[str, Any], ctx: HookContext) -> dict[str, Any]:
    cwd = _cwd(payload)
    project = ctx.project_name(cwd)
    logger.debug("session start in %s (%s)", cwd, project)
    if not ctx.api_key and ctx.client_factory is None:
        return context_output("SessionStart", format_auth_required())

    with closing(ctx.client(cwd, project)) as client:
        profile = client.get_profile()
        logger.debug(
            "profile: personal=%d project=%d recent=%d failures=%s",
            len(profile.personal),
            len(profile.project),
            len(profile.recent),
            profile.failures,
        )
        if not profile.scoped_fetch_failed:
            document = format_profile_context(
                profile,
                classifier=MemoryClassifier(ctx.config.category_markers),
                now=ctx.now(),
            )
            return context_output("SessionStart", document)

        fallback = best_effort(
            lambda: client.search(
                f"{project} coding session context", limit=ctx.config.max_context_results
            ),
            None,
            label="fallback search",
        )
    document = format_search_context(fallback.value.results) if fallback.value else None
    return context_output("SessionStart", document or format_empty_context())


def handle_prompt_submit(payload: dict[str, Any], ctx: HookContext) -> dict[str, Any]:
    prompt = str(payload.get("prompt") or "")
    if not prompt.strip():
        return {}
    session_id = str(payload.get("session_id") or "")

    if has_save_signal(prompt):
        best_effort(lambda: ctx.state.flag_prompt(session_id, prompt, now=ctx.now()), [], label="flag prompt")
        logger.debug("save signal flagged for session %s", session_id)

    if not ctx.api_key and ctx.client_factory is None:
        return {}
    if not (has_search_signal(prompt) or should_enrich_prompt(prompt)):
        return {}

    cwd = _cwd(payload)
    with closing(ctx.client(cwd, ctx.project_name(cwd))) as client:
        found = best_effort(
            lambda: client.search(prompt, limit=3, scope="both"), None, label="prompt search"
        )
    recall = format_recall_context(found.value.results) if found.value else None
    return context_output("UserPromptSubmit", recall) if recall else {}


def handle_post_tool_use(payload: dict[str, Any], ctx: HookContext) -> dict[str, Any]:
    tool_name = str(payload.get("tool_name") or "")
    lowered = tool_name.lower()
    skipped = {name.lower() for name in ctx.config.skip_tools}
    if lowered not in TRACKED_TOOLS or lowered in skipped:
        return {}

    session_id = str(payload.get("session_id") or "")
    tool_input = payload.get("tool_input") or {}
    summary = compress_observation(tool_name, tool_input, payload.get("tool_response"))
    file_path = _input_file_path(tool_input)
    entry = {
        "tool": tool_name,
        "summary": summary,
        "timestamp": ctx.now().isoformat(),
        "file": file_path,
        "meta": observation_metadata(tool_name, tool_input),
    }
    best_effort(lambda: ctx.state.append_activity(session_id, entry), None, label="append activity")
    if file_path and lowered in FILE_MUTATION_TOOLS:
        best_effort(
            lambda: ctx.state.track_file_change(session_id, file_path, tool_name, now=ctx.now()),
            None,
            label="track file change",
        )
    return {}


def handle_stop(payload: dict[str, Any], ctx: HookContext) -> dict[str, Any]:
    session_id = str(payload.get("session_id") or "")
    transcript_path = payload.get("transcript_path")
    if not session_id or not transcript_path:
        logger.debug("stop: missing transcript path or session id")
        return dict(STOP_OK)
    if not ctx.api_key and ctx.client_factory is None:
        return dict(STOP_OK)

    transcript = _read_text(transcript_path)
    if transcript is None:
        return dict(STOP_OK)

    cwd = _cwd(payload)
    project = ctx.project_name(cwd)
    flagged = [str(flag["prompt"]) for flag in ctx.state.flagged_prompts(session_id) if flag.get("prompt")]
    capture = CAPTURE_MODES[ctx.config.capture_mode]
    result = capture(transcript, cursor_key(project, session_id), ctx.cursors, ctx.capture_options(flagged))
    if result is None:
        logger.debug("stop: nothing worth capturing")
        return dict(STOP_OK)

    with closing(ctx.client(cwd, project)) as client:
        submit(
            client,
            result.content,
            event_type="session_turn",
            session_id=session_id,
            capture_mode=result.mode,
            memory_type="knowledge" if result.mode == MODE_SIGNAL else "episodic",
        )
    return dict(STOP_OK)


def handle_task_completed(payload: dict[str, Any], ctx: HookContext) -> dict[str, Any]:
    subject = str(payload.get("task_subject") or "")
    if not subject:
        return {}
    if not ctx.api_key and ctx.client_factory is None:
        return {}

    session_id = str(payload.get("session_id") or "")
    task_id = str(payload.get("task_id") or "")
    teammate = str(payload.get("teammate_name") or "")
    team = str(payload.get("team_name") or "")
    content = build_task_record(
        subject,
        description=str(payload.get("task_description") or ""),
        files_changed=ctx.state.changed_files(session_id) if session_id else [],
        highlights=ctx.state.highlights(session_id) if session_id else [],
        teammate=teammate,
        team=team,
        today=ctx.now().date(),
    )

    cwd = _cwd(payload)
    with closing(ctx.client(cwd, ctx.project_name(cwd))) as client:
        submit(
            client,
            content,
            event_type="task-completion",
            scope="project",
            memory_type="knowledge",
            session_id=session_id,
            extraction_context=extraction_context_for("task"),
            metadata={"task_id": task_id, "teammate": teammate, "team": team},
        )
    return {}


def handle_subagent_stop(payload: dict[str, Any], ctx: HookContext) -> dict[str, Any]:
    transcript_path = payload.get("agent_transcript_path")
    if not transcript_path:
        return {}
    if not ctx.api_key and ctx.client_factory is None:
        return {}

    transcript = _read_text(transcript_path)
    if not transcript:
        return {}
    agent_id = str(payload.get("agent_id") or "")
    agent_type = str(payload.get("agent_type") or "unknown")
    summary = build_subagent_summary(agent_type, agent_id, tail_events(transcript))
    if not summary:
        logger.debug("subagent %s left no assistant output", agent_id)
        return {}

    cwd = _cwd(payload)
    with closing(ctx.client(cwd, ctx.project_name(cwd))) as client:
        submit(
            client,
            summary,
            event_type="subagent-result",
            scope="project",
            memory_type="observation",
            session_id=str(payload.get("session_id") or ""),
            extraction_context=extraction_context_for("subagent"),
            metadata={"agent_id": agent_id, "agent_type": agent_type},
        )
    return {}


@dataclass(frozen=True)
class HookSpec:
    handler: Callable[[dict[str, Any], HookContext], dict[str, Any]]
    safe_default: Callable[[Exception], dict[str, Any]]


HOOKS: dict[str, HookSpec] = {
    "session-start": HookSpec(
        handle_session_start,
        lambda exc: context_output("SessionStart", format_error_context(str(exc))),
    ),
    "user-prompt-submit": HookSpec(handle_prompt_submit, lambda _exc: {}),
    "post-tool-use": HookSpec(handle_post_tool_use, lambda _exc: {}),
    "stop": HookSpec(handle_stop, lambda _exc: dict(STOP_OK)),
    "task-completed": HookSpec(handle_task_completed, lambda _exc: {}),
    "subagent-stop": HookSpec(handle_subagent_stop, lambda _exc: {}),
}


def run_hook(event: str, payload: dict[str, Any], ctx: HookContext) -> dict[str, Any]:
    """Dispatch one host event; unexpected failures become the event's safe default."""

    spec = HOOKS.get(event)
    if spec is None:
        logger.debug("unknown hook event %r", event)
        return {}
    try:
        return spec.handler(payload, ctx)
    except Exception as exc:
        logger.exception("%s hook failed", event)
        return spec.safe_default(exc)
