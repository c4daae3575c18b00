from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from .types import Turn

# Phrases in a prompt that ask for something to be kept.
SAVE_SIGNALS: tuple[str, ...] = (
    "remember this",
    "save this",
    "note this",
    "store this",
    "remember that",
    "save that",
    "keep this in mind",
    "important:",
    "decision:",
    "convention:",
)

# Phrases in a prompt that ask about earlier work.
SEARCH_SIGNALS: tuple[str, ...] = (
    "what did i",
    "what have i",
    "last time",
    "previously",
    "how did we",
    "remind me",
    "do you remember",
    "recall",
    "search memory",
    "search memories",
    "look up",
)

ENRICH_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(yesterday|last week|last session|earlier|before)\b"),
    re.compile(r"\b(architecture|pattern|decision|convention|approach)\b"),
    re.compile(r"\bhow (do|did|should) (we|i|you)\b"),
    re.compile(r"\bwhy (do|did|is|was|were)\b"),
)


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(keyword and keyword.lower() in lowered for keyword in keywords)


def find_signal_turns(turns: Sequence[Turn], keywords: Iterable[str]) -> list[int]:
    """Return indexes of turns whose user or assistant text mentions a keyword.

    Matching is a plain case-insensitive substring test; "fix" also hits
    "prefix".
    """

    keyword_list = [keyword for keyword in keywords if keyword]
    return [index for index, turn in enumerate(turns) if contains_any(turn.text, keyword_list)]


def turns_around_signals(
    turns: Sequence[Turn], signal_indices: Iterable[int], turns_before: int = 1
) -> list[int]:
    window = max(0, turns_before)
    include: set[int] = set()
    for idx in signal_indices:
        if idx < 0 or idx >= len(turns):
            continue
        include.update(range(max(0, idx - window), idx + 1))
    return sorted(include)


def has_save_signal(prompt: str) -> bool:
    return contains_any(prompt, SAVE_SIGNALS)


def has_search_signal(prompt: str) -> bool:
    return contains_any(prompt, SEARCH_SIGNALS)


def should_enrich_prompt(prompt: str) -> bool:
    lowered = prompt.lower()
    return any(pattern.search(lowered) for pattern in ENRICH_PATTERNS)
