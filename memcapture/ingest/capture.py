from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..compress import compress_observation
from ..config import DEFAULT_SIGNAL_KEYWORDS
from ..session_state import CursorStore
from .signals import find_signal_turns, turns_around_signals
from .transcript import group_into_turns, new_events, parse_transcript
from .types import Event, Turn

logger = logging.getLogger(__name__)

MAX_MESSAGE_CHARS = 500
MAX_PAYLOAD_CHARS = 4000
MIN_PAYLOAD_CHARS = 50
MIN_TURN_CHARS = 20
TURN_SEPARATOR = "\n---\n"

MODE_SIGNAL = "signal"
MODE_FULL = "full"


@dataclass(frozen=True, slots=True)
class CaptureOptions:
    signal_keywords: Sequence[str] = DEFAULT_SIGNAL_KEYWORDS
    turns_before: int = 1
    capture_tools: Sequence[str] = ()
    include_tools: bool = True
    min_signal_entries: int = 2
    min_full_entries: int = 3


@dataclass(frozen=True, slots=True)
class CaptureResult:
    content: str
    mode: str
    turn_count: int = 0
    signal_turns: list[int] = field(default_factory=list)


def format_turn(
    turn: Turn,
    *,
    include_tools: bool = True,
    capture_tools: Sequence[str] = (),
) -> str:
    parts: list[str] = []
    if turn.user_message:
        parts.append(f"User: {turn.user_message.strip()[:MAX_MESSAGE_CHARS]}")

    if include_tools and turn.tools:
        wanted = [name.lower() for name in capture_tools if name]
        relevant = (
            [tool for tool in turn.tools if any(name in tool.name.lower() for name in wanted)]
            if wanted
            else list(turn.tools)
        )
        if relevant:
            compressed = [
                compress_observation(tool.name, tool.tool_input, tool.output) for tool in relevant
            ]
            parts.append(f"Tools: {'; '.join(compressed)}")

    if turn.assistant_message:
        parts.append(f"Assistant: {turn.assistant_message.strip()[:MAX_MESSAGE_CHARS]}")

    return "\n".join(parts)


def _join_turns(turns: Sequence[Turn], options: CaptureOptions) -> str | None:
    formatted = [
        text
        for text in (
            format_turn(
                turn,
                include_tools=options.include_tools,
                capture_tools=options.capture_tools,
            )
            for turn in turns
        )
        if len(text) > MIN_TURN_CHARS
    ]
    joined = TURN_SEPARATOR.join(formatted)
    if len(joined) < MIN_PAYLOAD_CHARS:
        return None
    return joined[:MAX_PAYLOAD_CHARS]


def _pending_turns(
    events: list[Event], cursor_key: str, cursors: CursorStore, minimum: int
) -> list[Turn] | None:
    if not events:
        return None
    pending = new_events(events, cursors.get(cursor_key))
    if len(pending) < minimum:
        return None
    turns = group_into_turns(pending)
    return turns or None


def _commit(events: list[Event], cursor_key: str, cursors: CursorStore) -> None:
    # Advance past the whole log so turns skipped by signal mode are not revisited.
    cursors.advance(cursor_key, max(event.index for event in events) + 1)


def capture_signal(
    transcript: str,
    cursor_key: str,
    cursors: CursorStore,
    options: CaptureOptions | None = None,
) -> CaptureResult | None:
    """Capture only the turns around keyword signals, with preceding context."""

    options = options or CaptureOptions()
    events = parse_transcript(transcript)
    turns = _pending_turns(events, cursor_key, cursors, options.min_signal_entries)
    if turns is None:
        return None

    signal_indices = find_signal_turns(turns, options.signal_keywords)
    if not signal_indices:
        return None
    selected = [
        turns[i] for i in turns_around_signals(turns, signal_indices, options.turns_before)
    ]

    content = _join_turns(selected, options)
    if content is None:
        return None
    _commit(events, cursor_key, cursors)
    logger.debug(
        "signal capture: %d of %d turns, %d chars", len(selected), len(turns), len(content)
    )
    return CaptureResult(
        content=content,
        mode=MODE_SIGNAL,
        turn_count=len(selected),
        signal_turns=signal_indices,
    )


def capture_full(
    transcript: str,
    cursor_key: str,
    cursors: CursorStore,
    options: CaptureOptions | None = None,
) -> CaptureResult | None:
    """Capture every new turn since the cursor."""

    options = options or CaptureOptions()
    events = parse_transcript(transcript)
    turns = _pending_turns(events, cursor_key, cursors, options.min_full_entries)
    if turns is None:
        return None

    content = _join_turns(turns, options)
    if content is None:
        return None
    _commit(events, cursor_key, cursors)
    logger.debug("full capture: %d turns, %d chars", len(turns), len(content))
    return CaptureResult(content=content, mode=MODE_FULL, turn_count=len(turns))


def capture_smart(
    transcript: str,
    cursor_key: str,
    cursors: CursorStore,
    options: CaptureOptions | None = None,
) -> CaptureResult | None:
    return capture_signal(transcript, cursor_key, cursors, options) or capture_full(
        transcript, cursor_key, cursors, options
    )


CAPTURE_MODES = {
    "smart": capture_smart,
    MODE_SIGNAL: capture_signal,
    MODE_FULL: capture_full,
}
