from __future__ import annotations

import subprocess

GIT_TIMEOUT_S = 3.0


def get_remote_url(cwd: str, *, timeout: float = GIT_TIMEOUT_S) -> str | None:
    """Return the origin remote of the repository at cwd, or None."""

    try:
        remote = subprocess.check_output(
            ["git", "remote", "get-url", "origin"],
            cwd=cwd,
            stderr=subprocess.DEVNULL,
            text=True,
            timeout=timeout,
        ).strip()
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError):
        return None
    return remote or None
