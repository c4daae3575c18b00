from __future__ import annotations

import json
import logging
import sys
import threading
from typing import IO, Any

logger = logging.getLogger(__name__)

STDIN_TIMEOUT_S = 5.0


def parse_payload(raw: str | None) -> dict[str, Any]:
    """Decode a hook payload; anything but a JSON object becomes ``{}``."""

    cleaned = (raw or "").lstrip("\ufeff").strip()
    if not cleaned:
        return {}
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.debug("invalid hook payload: %s", exc)
        return {}
    return payload if isinstance(payload, dict) else {}


def read_payload(stream: IO[str] | None = None, *, timeout: float = STDIN_TIMEOUT_S) -> dict[str, Any]:
    """Read one JSON object from stdin, giving up after ``timeout`` seconds."""

    source = stream if stream is not None else sys.stdin
    chunks: list[str] = []

    def _read() -> None:
        try:
            chunks.append(source.read())
        except (OSError, ValueError) as exc:
            logger.debug("stdin read failed: %s", exc)

    reader = threading.Thread(target=_read, daemon=True)
    reader.start()
    reader.join(timeout)
    if reader.is_alive():
        logger.debug("stdin read timed out after %.1fs", timeout)
        return {}
    return parse_payload("".join(chunks))


def write_output(output: dict[str, Any], stream: IO[str] | None = None) -> None:
    target = stream if stream is not None else sys.stdout
    target.write(json.dumps(output, ensure_ascii=False) + "\n")
    target.flush()
