from __future__ import annotations

from typing import Final

PERSONAL_EXTRACTION_CONTEXT: Final = """EXTRACT from this developer session:
- Preferences: coding style, tool choices, workflow preferences
- Learnings: new concepts learned, problems solved, debugging insights
- Actions: what was built, refactored, or fixed
- Decisions: personal choices about approach, tools, or patterns

SKIP:
- Generic AI explanations the developer didn't act on
- Boilerplate code or standard operations
- File contents or raw diffs (git tracks these)
- Routine tool outputs"""

PROJECT_EXTRACTION_CONTEXT: Final = """EXTRACT from this project session:
- Architecture: system design, module structure, data flow
- Conventions: naming patterns, file organization, import style
- Decisions: why specific tech/patterns were chosen over alternatives
- Patterns: reusable approaches, error handling, auth flow
- Setup: environment requirements, build steps, deploy process
- Key files: where important logic lives and why

SKIP:
- Individual code changes (git tracks these)
- Temporary debugging steps
- Standard library usage
- Generic best practices not specific to this project"""

TASK_EXTRACTION_CONTEXT: Final = """This is a structured task completion record.
STORE as project knowledge with high confidence.
EXTRACT: task goal, approach used, files modified, team context.
Do NOT decompose. This is already in final form."""

SUBAGENT_EXTRACTION_CONTEXT: Final = """This is a compressed subagent execution summary.
STORE as project observation.
EXTRACT: what the subagent accomplished, files touched, key findings.
Do NOT decompose. This is already summarized."""

MANUAL_EXTRACTION_CONTEXT: Final = """This is user-curated content explicitly saved.
STORE with high importance; the user chose to save this deliberately.
Preserve the content as-is with minimal processing."""

EXTRACTION_CONTEXTS: Final[dict[str, str]] = {
    "personal": PERSONAL_EXTRACTION_CONTEXT,
    "project": PROJECT_EXTRACTION_CONTEXT,
    "task": TASK_EXTRACTION_CONTEXT,
    "subagent": SUBAGENT_EXTRACTION_CONTEXT,
    "manual": MANUAL_EXTRACTION_CONTEXT,
}


def extraction_context_for(source: str) -> str:
    try:
        return EXTRACTION_CONTEXTS[source]
    except KeyError:
        raise ValueError(
            f"Unknown extraction source '{source}'. "
            f"Allowed sources: {', '.join(EXTRACTION_CONTEXTS)}"
        ) from None
