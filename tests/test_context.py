from __future__ import annotations

import datetime as dt

from memcapture.context import (
    bucket_profile,
    format_auth_required,
    format_empty_context,
    format_error_context,
    format_profile_context,
    format_recall_context,
    format_relative_time,
    format_search_context,
)
from memcapture.types import MemoryRecord, Profile

NOW = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


def test_format_relative_time_buckets() -> None:
    assert format_relative_time("2026-03-01T11:55:00Z", NOW) == "5m ago"
    assert format_relative_time("2026-03-01T09:00:00+00:00", NOW) == "3h ago"
    assert format_relative_time("2026-02-27T12:00:00Z", NOW) == "2d ago"
    assert format_relative_time("2026-02-15T12:00:00Z", NOW) == "2w ago"
    assert format_relative_time("2025-12-01T12:00:00Z", NOW) == "3mo ago"


def test_format_relative_time_unparseable() -> None:
    assert format_relative_time("yesterday-ish", NOW) is None
    assert format_relative_time(None, NOW) is None


def test_personal_conventions_become_preferences() -> None:
    profile = Profile(
        personal=[
            MemoryRecord(content="Prefers ruff over flake8"),
            MemoryRecord(content="Works mostly in the evening"),
            MemoryRecord(content="Gotcha: local redis needs a password"),
        ],
        project=[MemoryRecord(content="Naming convention: kebab-case routes")],
    )
    buckets = bucket_profile(profile)
    assert [r.content for r in buckets["preferences"]] == [
        "Prefers ruff over flake8",
        "Works mostly in the evening",
    ]
    assert [r.content for r in buckets["warning"]] == ["Gotcha: local redis needs a password"]
    assert [r.content for r in buckets["convention"]] == ["Naming convention: kebab-case routes"]


def test_profile_document_sections_in_order() -> None:
    profile = Profile(
        personal=[MemoryRecord(content="Prefers tabs", memory_type="preference")],
        project=[
            MemoryRecord(content="Watch out: the bug in retries"),
            MemoryRecord(content="We chose httpx because of sync support"),
        ],
        recent=[
            MemoryRecord(content="Refactored the loader", created_at="2026-03-01T10:00:00Z"),
            MemoryRecord(content="Old note", created_at="garbage"),
        ],
    )
    document = format_profile_context(profile, now=NOW)

    assert document.startswith("<memorystack-context>\n")
    assert document.endswith("</memorystack-context>")
    headings = [
        "## Architecture & Decisions",
        "## Gotchas & Warnings",
        "## Developer Preferences",
        "## Recent Activity",
    ]
    positions = [document.index(h) for h in headings]
    assert positions == sorted(positions)
    assert "- Prefers tabs [preference]" in document
    assert "- Refactored the loader (2h ago)" in document
    assert "- Old note\n" in document
    assert "## Conventions & Patterns" not in document


def test_empty_profile_uses_empty_document() -> None:
    assert format_profile_context(Profile()) == format_empty_context()


def test_search_context() -> None:
    records = [
        MemoryRecord(content="Use httpx", memory_type="fact", confidence=0.91),
        MemoryRecord(content="Tabs"),
    ]
    document = format_search_context(records, show_confidence=True)
    assert document is not None
    assert "## Relevant Memories\n1. Use httpx [fact] (91%)\n2. Tabs\n" in document
    assert format_search_context([]) is None


def test_recall_and_status_documents() -> None:
    recall = format_recall_context([MemoryRecord(content="Deploys go through make release")])
    assert recall == (
        "<memorystack-recall>\nRelevant memories for this prompt:\n"
        "1. Deploys go through make release\n</memorystack-recall>"
    )
    assert format_recall_context([]) is None
    assert "boom" in format_error_context("boom")
    assert "memcapture login" in format_auth_required()


def test_non_string_timestamp_is_not_rendered() -> None:
    assert format_relative_time(1772193600000, NOW) is None  # type: ignore[arg-type]


def test_epoch_created_at_renders_in_profile() -> None:
    # 2026-02-27T12:00:00Z as epoch milliseconds and seconds
    in_ms = MemoryRecord.from_api({"content": "Refactored the loader", "created_at": 1772193600000})
    in_s = MemoryRecord.from_api({"content": "Bumped httpx", "createdAt": 1772193600})
    assert in_ms.created_at == "2026-02-27T12:00:00+00:00"
    assert in_s.created_at == in_ms.created_at
    assert MemoryRecord.from_api({"content": "x", "created_at": {"at": 1}}).created_at is None

    document = format_profile_context(Profile(recent=[in_ms, in_s]), now=NOW)
    assert "- Refactored the loader (2d ago)" in document
    assert "- Bumped httpx (2d ago)" in document
