from __future__ import annotations

import datetime as dt
import os
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .transcript import parse_transcript
from .types import ASSISTANT_ROLE, Event

MAX_SUBAGENT_LINES = 100
MAX_SUBAGENT_SUMMARY_CHARS = 2000
MAX_SUBAGENT_ACTIONS = 10
MAX_SUBAGENT_RESULT_CHARS = 500


def build_task_record(
    subject: str,
    *,
    description: str = "",
    files_changed: Sequence[str] = (),
    highlights: Sequence[str] = (),
    teammate: str = "",
    team: str = "",
    today: dt.date | None = None,
) -> str:
    parts = [f"[Task Completed] {subject}"]
    if description:
        parts.append(f"Description: {description}")
    if files_changed:
        parts.append(f"Files modified: {', '.join(files_changed)}")
    if highlights:
        parts.append(f"Approach: {'; '.join(highlights)}")
    if teammate:
        parts.append(f"Completed by: {teammate}")
    if team:
        parts.append(f"Team: {team}")
    parts.append(f"Date: {(today or dt.datetime.now(dt.timezone.utc).date()).isoformat()}")
    return "\n".join(parts)


def tail_events(transcript: str, max_lines: int = MAX_SUBAGENT_LINES) -> list[Event]:
    lines = [line for line in transcript.strip().split("\n") if line.strip()]
    return parse_transcript("\n".join(lines[-max_lines:]))


def _assistant_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            str(block.get("text") or "")
            for block in content
            if isinstance(block, Mapping) and block.get("type") == "text"
        )
    return ""


def _describe_tool_use(block: Mapping[str, Any]) -> str:
    name = str(block.get("name") or "unknown")
    tool_input = block.get("input")
    if not isinstance(tool_input, Mapping):
        return name
    file = tool_input.get("file_path") or tool_input.get("path")
    if file:
        return f"{name}: {os.path.basename(str(file))}"
    command = tool_input.get("command")
    if command:
        return f"{name}: {str(command)[:60]}"
    return name


def _event_content(event: Event) -> Any:
    content = event.raw.get("content")
    message = event.raw.get("message")
    if not content and isinstance(message, Mapping):
        content = message.get("content")
    return content


def build_subagent_summary(agent_type: str, agent_id: str, events: Iterable[Event]) -> str | None:
    assistant = [
        content
        for content in (_event_content(e) for e in events if e.role == ASSISTANT_ROLE)
        if content
    ]
    if not assistant:
        return None

    parts = [f"[Subagent:{agent_type}] ({agent_id})"]
    actions = [
        _describe_tool_use(block)
        for content in assistant
        if isinstance(content, list)
        for block in content
        if isinstance(block, Mapping) and block.get("type") == "tool_use"
    ]
    if actions:
        parts.append(f"Actions: {', '.join(actions[:MAX_SUBAGENT_ACTIONS])}")

    messages = [text for text in (_assistant_text(content) for content in assistant) if text]
    if messages:
        parts.append(f"Result: {messages[-1][:MAX_SUBAGENT_RESULT_CHARS]}")

    summary = "\n".join(parts)
    if len(summary) > MAX_SUBAGENT_SUMMARY_CHARS:
        return summary[:MAX_SUBAGENT_SUMMARY_CHARS] + "..."
    return summary
