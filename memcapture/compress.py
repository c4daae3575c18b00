from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from typing import Any

GENERIC_OUTPUT_CHARS = 60
SERIALIZED_OUTPUT_CHARS = 200

_WHITESPACE_RE = re.compile(r"\s+")

OutputExtractor = Callable[[Mapping[str, Any]], "str | None"]


def _field_extractor(key: str) -> OutputExtractor:
    def extract(payload: Mapping[str, Any]) -> str | None:
        value = payload.get(key)
        return str(value) if value else None

    return extract


def _success_extractor(payload: Mapping[str, Any]) -> str | None:
    if "success" not in payload or payload["success"] is None:
        return None
    return "success" if payload["success"] else "failed"


# Probed in order against structured tool responses; first hit wins.
OUTPUT_EXTRACTORS: list[tuple[str, OutputExtractor]] = [
    ("output", _field_extractor("output")),
    ("stdout", _field_extractor("stdout")),
    ("result", _field_extractor("result")),
    ("content", _field_extractor("content")),
    ("success", _success_extractor),
]


def normalize_output(output: Any) -> str:
    if not output:
        return ""
    if isinstance(output, str):
        return output
    if isinstance(output, Mapping):
        for _name, extractor in OUTPUT_EXTRACTORS:
            value = extractor(output)
            if value is not None:
                return value
    try:
        return json.dumps(output, ensure_ascii=False, default=str)[:SERIALIZED_OUTPUT_CHARS]
    except (TypeError, ValueError, RecursionError):
        return ""


def truncate(text: Any, max_len: int) -> str:
    if not text:
        return ""
    clean = _WHITESPACE_RE.sub(" ", str(text)).strip()
    if len(clean) <= max_len:
        return clean
    return clean[: max_len - 3] + "..."


def _field(tool_input: Any, *keys: str) -> Any:
    if not isinstance(tool_input, Mapping):
        return ""
    for key in keys:
        value = tool_input.get(key)
        if value:
            return value
    return ""


def extract_basename(file_path: Any) -> str:
    if not file_path:
        return "unknown"
    parts = str(file_path).replace("\\", "/").split("/")
    return "/".join(parts[-2:])


def extract_file_path(tool_input: Any) -> str:
    if not tool_input:
        return "unknown"
    raw = _field(tool_input, "file_path", "path", "file", "filename", "target_file")
    return extract_basename(raw)


def _compress_edit(tool_input: Any, _output: str) -> str:
    file = extract_file_path(tool_input)
    old_text = truncate(_field(tool_input, "old_text", "old_string", "target"), 40)
    new_text = truncate(_field(tool_input, "new_text", "new_string", "replacement"), 40)
    if old_text and new_text:
        return f"Edited {file}: '{old_text}' → '{new_text}'"
    return f"Edited {file}"


def _compress_write(tool_input: Any, _output: str) -> str:
    file = extract_file_path(tool_input)
    content = _field(tool_input, "content", "file_text")
    return f"Created {file} ({len(str(content)) if content else 0} chars)"


def _compress_read(tool_input: Any, _output: str) -> str:
    return f"Read {extract_file_path(tool_input)}"


def _compress_shell(tool_input: Any, output: str) -> str:
    cmd = truncate(_field(tool_input, "command", "cmd", "description"), 60)
    result = truncate(output, 60)
    if cmd and result:
        return f"Ran: {cmd} → {result}"
    if cmd:
        return f"Ran: {cmd}"
    return "Ran bash command"


def _compress_search(tool_input: Any, output: str) -> str:
    pattern = _field(tool_input, "pattern", "glob", "query")
    count = len([line for line in (output or "").split("\n") if line.strip()])
    return f"Searched '{truncate(pattern, 30)}' → {count} results"


def _compress_grep(tool_input: Any, _output: str) -> str:
    query = _field(tool_input, "query", "pattern")
    path = _field(tool_input, "path", "search_path")
    return f"Grep '{truncate(query, 30)}' in {extract_basename(path)}"


Formatter = Callable[[Any, str], str]

TOOL_FAMILIES: dict[str, tuple[frozenset[str], Formatter]] = {
    "edit": (frozenset({"edit", "editfile", "edit_file", "multiedit"}), _compress_edit),
    "write": (
        frozenset(
            {"write", "writefile", "write_file", "write_to_file", "createfile", "create_file"}
        ),
        _compress_write,
    ),
    "read": (frozenset({"read", "readfile", "read_file", "view"}), _compress_read),
    "shell": (
        frozenset({"bash", "terminal", "execute_command", "shell", "run_command"}),
        _compress_shell,
    ),
    "search": (frozenset({"glob", "search", "find", "list", "listdir", "ls"}), _compress_search),
    "grep": (frozenset({"grep", "ripgrep", "rg"}), _compress_grep),
}


def tool_family(tool_name: str | None) -> str | None:
    name = (tool_name or "").lower()
    for family, (names, _formatter) in TOOL_FAMILIES.items():
        if name in names:
            return family
    return None


def compress_observation(tool_name: str | None, tool_input: Any, output: Any) -> str:
    """Reduce one tool call to a single human-readable line.

    Never raises: a malformed input or response degrades to ``Used <tool>``
    so one odd observation cannot abort a capture.
    """

    try:
        output_text = normalize_output(output)
        family = tool_family(tool_name)
        if family is None:
            summary = truncate(output_text, GENERIC_OUTPUT_CHARS)
            return f"{tool_name or 'unknown tool'}: {summary or '(completed)'}"
        _names, formatter = TOOL_FAMILIES[family]
        return formatter(tool_input, output_text)
    except Exception:
        return f"Used {tool_name or 'unknown tool'}"


def observation_metadata(tool_name: str | None, tool_input: Any) -> dict[str, str]:
    meta: dict[str, str] = {}
    try:
        file = extract_file_path(tool_input)
        if file and file != "unknown":
            meta["file"] = file
        cmd = _field(tool_input, "command", "cmd")
        if cmd:
            meta["command"] = truncate(cmd, 100)
    except Exception:
        return {}
    return meta
