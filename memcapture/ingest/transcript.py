from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from .types import TEXT_ROLE, Event, ToolActivity, Turn

MAX_TOOL_OUTPUT_CHARS = 500


def parse_transcript(content: str | None) -> list[Event]:
    """Parse a JSONL transcript into indexed events.

    Blank lines are skipped and do not consume an index. A line that is not
    a JSON object is kept as a plain ``text`` event so later indexes never
    shift because of one bad line.
    """

    if not content or not isinstance(content, str):
        return []
    events: list[Event] = []
    lines = [line for line in content.split("\n") if line.strip()]
    for index, line in enumerate(lines):
        try:
            entry = json.loads(line)
        except ValueError:
            entry = None
        if not isinstance(entry, dict):
            events.append(Event(index=index, role=TEXT_ROLE, raw={"type": TEXT_ROLE, "content": line}))
            continue
        role = entry.get("role") or entry.get("type") or "unknown"
        events.append(Event(index=index, role=str(role), raw=entry))
    return events


def new_events(events: Iterable[Event], last_captured_index: int) -> list[Event]:
    return [event for event in events if event.index >= last_captured_index]


def extract_content(entry: Mapping[str, Any]) -> str:
    content = entry.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            str(block.get("text") or "")
            for block in content
            if isinstance(block, Mapping) and block.get("type") == "text"
        )
    message = entry.get("message")
    if isinstance(message, str):
        return message
    if isinstance(message, Mapping):
        return extract_content(message)
    return ""


def truncate_output(output: Any, limit: int = MAX_TOOL_OUTPUT_CHARS) -> str:
    if not output:
        return ""
    if not isinstance(output, str):
        try:
            output = json.dumps(output, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            output = str(output)
    return output[:limit]


def tool_activity(entry: Mapping[str, Any]) -> ToolActivity:
    name = entry.get("name") or entry.get("tool_name") or "unknown"
    tool_input = entry.get("input") or entry.get("tool_input") or {}
    return ToolActivity(
        name=str(name),
        tool_input=tool_input,
        output=truncate_output(entry.get("output") or entry.get("content") or ""),
    )


def group_into_turns(events: Iterable[Event]) -> list[Turn]:
    turns: list[Turn] = []
    current: Turn | None = None

    for event in events:
        if event.is_user:
            if current is not None:
                turns.append(current)
            current = Turn(
                user_message=extract_content(event.raw),
                start_index=event.index,
                end_index=event.index,
            )
            continue
        if current is None:
            # Nothing before the first user message belongs to a turn.
            continue
        if event.is_tool:
            current.tools.append(tool_activity(event.raw))
        else:
            # Assistant text and unrecognized roles share the accumulator.
            current.assistant_message += extract_content(event.raw) + "\n"
        current.end_index = event.index

    if current is not None:
        turns.append(current)
    return turns
