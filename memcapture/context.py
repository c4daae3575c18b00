from __future__ import annotations

import datetime as dt
from collections.abc import Sequence

from .classifier import (
    CONVENTION,
    DECISION,
    DISCOVERY,
    KNOWLEDGE,
    WARNING,
    WORK,
    MemoryClassifier,
)
from .types import MemoryRecord, Profile

CONTEXT_TAG = "memorystack-context"
STATUS_TAG = "memorystack-status"
RECALL_TAG = "memorystack-recall"

PREFERENCES = "preferences"

# Rendering order and headings for profile sections.
PROFILE_SECTIONS: tuple[tuple[str, str], ...] = (
    (DECISION, "Architecture & Decisions"),
    (WARNING, "Gotchas & Warnings"),
    (CONVENTION, "Conventions & Patterns"),
    (PREFERENCES, "Developer Preferences"),
    (DISCOVERY, "Discoveries"),
    (WORK, "Completed Work"),
    (KNOWLEDGE, "Project Knowledge"),
)


def _wrap(tag: str, body: str) -> str:
    return f"<{tag}>\n{body}\n</{tag}>"


def _parse_timestamp(value: str) -> dt.datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    parsed = dt.datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def format_relative_time(value: str | None, now: dt.datetime | None = None) -> str | None:
    if not value:
        return None
    try:
        created = _parse_timestamp(value)
    except (AttributeError, TypeError, ValueError):
        return None
    current = now or dt.datetime.now(dt.timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=dt.timezone.utc)
    seconds = max(0.0, (current - created).total_seconds())
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    if days < 30:
        return f"{days // 7}w ago"
    return f"{days // 30}mo ago"


def _bullet(record: MemoryRecord) -> str:
    tag = f" [{record.memory_type}]" if record.memory_type else ""
    return f"- {record.content}{tag}"


def bucket_profile(
    profile: Profile, classifier: MemoryClassifier | None = None
) -> dict[str, list[MemoryRecord]]:
    classifier = classifier or MemoryClassifier()
    buckets: dict[str, list[MemoryRecord]] = {key: [] for key, _ in PROFILE_SECTIONS}
    for record in profile.personal:
        category = classifier.classify(record)
        # Personal conventions and loose knowledge describe the developer, not the project.
        if category in {CONVENTION, KNOWLEDGE}:
            category = PREFERENCES
        buckets[category].append(record)
    for record in profile.project:
        buckets[classifier.classify(record)].append(record)
    return buckets


def format_profile_context(
    profile: Profile,
    *,
    classifier: MemoryClassifier | None = None,
    now: dt.datetime | None = None,
) -> str:
    buckets = bucket_profile(profile, classifier)
    sections: list[str] = []
    for key, heading in PROFILE_SECTIONS:
        records = buckets[key]
        if records:
            sections.append(f"## {heading}\n" + "\n".join(_bullet(r) for r in records))

    if profile.recent:
        lines = []
        for record in profile.recent:
            ago = format_relative_time(record.created_at, now)
            lines.append(f"- {record.content}{f' ({ago})' if ago else ''}")
        sections.append("## Recent Activity\n" + "\n".join(lines))

    if not sections:
        return format_empty_context()

    body = "\n\n".join(sections)
    return _wrap(
        CONTEXT_TAG,
        "The following is recalled context about the developer and this project.\n"
        "Reference it naturally when relevant; don't force it.\n"
        "Pay close attention to gotchas and warnings before changing related code.\n\n"
        f"{body}\n\n"
        "Use these memories to inform your responses. Don't repeat them verbatim.",
    )


def format_search_context(
    records: Sequence[MemoryRecord], *, show_confidence: bool = False
) -> str | None:
    if not records:
        return None
    lines = []
    for i, record in enumerate(records, start=1):
        line = f"{i}. {record.content}"
        if record.memory_type:
            line += f" [{record.memory_type}]"
        if show_confidence and record.confidence:
            line += f" ({round(record.confidence * 100)}%)"
        lines.append(line)
    return _wrap(
        CONTEXT_TAG,
        "The following is recalled context about the user and previous sessions.\n"
        "Reference it only when relevant to the conversation.\n\n"
        "## Relevant Memories\n"
        + "\n".join(lines)
        + "\n\nUse these memories naturally when relevant but don't force them into every "
        "response. Don't repeat them verbatim.",
    )


def format_recall_context(records: Sequence[MemoryRecord]) -> str | None:
    if not records:
        return None
    lines = "\n".join(f"{i}. {record.content}" for i, record in enumerate(records, start=1))
    return _wrap(RECALL_TAG, f"Relevant memories for this prompt:\n{lines}")


def format_empty_context() -> str:
    return _wrap(
        CONTEXT_TAG,
        "No previous memories found for this project.\n"
        "Memories will be saved automatically as you work.",
    )


def format_error_context(message: str) -> str:
    return _wrap(
        STATUS_TAG,
        f"Failed to load memories: {message}\nSession will continue without memory context.",
    )


def format_auth_required() -> str:
    return _wrap(
        STATUS_TAG,
        "Authentication required.\n"
        "Set MEMORYSTACK_API_KEY or run `memcapture login <key>` with a key from:\n"
        "https://memorystack.app/dashboard/api-keys",
    )
