from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

USER_ROLES = frozenset({"user", "human"})
ASSISTANT_ROLE = "assistant"
TOOL_ROLES = frozenset({"tool_use", "tool_result"})
TEXT_ROLE = "text"


@dataclass(frozen=True, slots=True)
class Event:
    index: int
    role: str
    raw: dict[str, Any]

    @property
    def is_user(self) -> bool:
        return self.role in USER_ROLES

    @property
    def is_tool(self) -> bool:
        return self.role in TOOL_ROLES


@dataclass(frozen=True, slots=True)
class ToolActivity:
    name: str
    tool_input: Any
    output: str


@dataclass(slots=True)
class Turn:
    user_message: str
    start_index: int
    end_index: int
    assistant_message: str = ""
    tools: list[ToolActivity] = field(default_factory=list)

    @property
    def text(self) -> str:
        return f"{self.user_message} {self.assistant_message}"
