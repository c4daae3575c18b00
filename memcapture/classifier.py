from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Final

from .types import MemoryRecord

WORK: Final = "work"
DISCOVERY: Final = "discovery"
DECISION: Final = "decision"
WARNING: Final = "warning"
CONVENTION: Final = "convention"
KNOWLEDGE: Final = "knowledge"

CATEGORIES: Final[tuple[str, ...]] = (WORK, DISCOVERY, DECISION, WARNING, CONVENTION, KNOWLEDGE)

TASK_COMPLETION_TYPE: Final = "task-completion"
TASK_COMPLETION_MARKER: Final = "[task completed]"
SUBAGENT_RESULT_TYPE: Final = "subagent-result"
SUBAGENT_MARKER: Final = "[subagent:"


@dataclass(frozen=True)
class CategoryRule:
    category: str
    markers: tuple[str, ...]
    type_tags: tuple[str, ...] = ()

    def matches(self, type_tags: set[str], lowered_content: str) -> bool:
        if any(tag in type_tags for tag in self.type_tags):
            return True
        return any(marker in lowered_content for marker in self.markers)


# Order is priority: the first matching rule names the category.
DEFAULT_RULES: Final[tuple[CategoryRule, ...]] = (
    CategoryRule(WORK, (TASK_COMPLETION_MARKER,), (TASK_COMPLETION_TYPE,)),
    CategoryRule(DISCOVERY, (SUBAGENT_MARKER,), (SUBAGENT_RESULT_TYPE,)),
    CategoryRule(
        DECISION,
        (
            "decision",
            "decided",
            "chose",
            "instead of",
            "because",
            "architecture",
            "design",
            "data flow",
            "system boundary",
            "tradeoff",
            "trade-off",
        ),
    ),
    CategoryRule(
        WARNING,
        (
            "gotcha",
            "workaround",
            "bug",
            "breaks",
            "tricky",
            "caveat",
            "must ",
            "always ",
            "never ",
            "warning",
            "careful",
            "don't ",
        ),
    ),
    CategoryRule(
        CONVENTION,
        (
            "convention",
            "pattern",
            "prefers",
            "style",
            "naming",
            "eslint",
            "prettier",
            "ruff",
            "black",
            "lint",
        ),
    ),
)


def build_rules(extra_markers: Mapping[str, Iterable[str]] | None = None) -> tuple[CategoryRule, ...]:
    """Merge configured markers into the built-in rules, keeping rule order."""

    if not extra_markers:
        return DEFAULT_RULES
    rules: list[CategoryRule] = []
    for rule in DEFAULT_RULES:
        extra = tuple(m.lower() for m in extra_markers.get(rule.category, ()) if m)
        rules.append(CategoryRule(rule.category, rule.markers + extra, rule.type_tags))
    return tuple(rules)


def _type_tags(record: MemoryRecord) -> set[str]:
    tags = set()
    if record.memory_type:
        tags.add(str(record.memory_type).lower())
    meta_type = record.metadata.get("type") if record.metadata else None
    if isinstance(meta_type, str) and meta_type:
        tags.add(meta_type.lower())
    return tags


def classify_memory(record: MemoryRecord, rules: Sequence[CategoryRule] = DEFAULT_RULES) -> str:
    lowered = (record.content or "").lower()
    tags = _type_tags(record)
    for rule in rules:
        if rule.matches(tags, lowered):
            return rule.category
    return KNOWLEDGE


class MemoryClassifier:
    def __init__(self, extra_markers: Mapping[str, Iterable[str]] | None = None) -> None:
        self.rules = build_rules(extra_markers)

    def classify(self, record: MemoryRecord) -> str:
        return classify_memory(record, self.rules)
