from __future__ import annotations

import hashlib
import os
import re
from collections.abc import Callable
from urllib.parse import urlparse

from .git_info import get_remote_url

PERSONAL_PREFIX = "personal_"
PROJECT_PREFIX = "project_"

_UNSAFE_SCOPE_RE = re.compile(r"[^a-zA-Z0-9_-]")
_SCP_REMOTE_RE = re.compile(r"^(?:[^@/]+@)?[^:/]+:(?!//)(.*)$")

RemoteLookup = Callable[[str], "str | None"]


def sanitize_scope_part(value: str) -> str:
    return _UNSAFE_SCOPE_RE.sub("_", value).lower()


def remote_repo_path(remote: str) -> str:
    """Reduce a git remote to its repository path, e.g. ``acme/widgets``."""

    cleaned = remote.strip().rstrip("/")
    if cleaned.endswith(".git"):
        cleaned = cleaned[: -len(".git")]
    if "://" in cleaned:
        path = urlparse(cleaned).path
    else:
        match = _SCP_REMOTE_RE.match(cleaned)
        path = match.group(1) if match else cleaned
    return path.strip("/")


class ScopeResolver:
    """Derives the personal and project partition keys for one working directory."""

    def __init__(
        self,
        cwd: str,
        project_name: str,
        *,
        remote_lookup: RemoteLookup = get_remote_url,
    ) -> None:
        self.cwd = cwd
        self.project_name = project_name
        self._remote_lookup = remote_lookup
        self._project_scope: str | None = None

    @staticmethod
    def personal(cwd: str) -> str:
        digest = hashlib.sha256(os.path.abspath(cwd).encode("utf-8")).hexdigest()
        return f"{PERSONAL_PREFIX}{digest[:16]}"

    @staticmethod
    def project(remote_url: str) -> str:
        return f"{PROJECT_PREFIX}{sanitize_scope_part(remote_repo_path(remote_url))}"

    @staticmethod
    def fallback(project_name: str) -> str:
        return f"{PROJECT_PREFIX}{sanitize_scope_part(project_name)}"

    def personal_scope_id(self) -> str:
        return self.personal(self.cwd)

    def project_scope_id(self) -> str:
        if self._project_scope is None:
            remote = self._lookup_remote()
            path = remote_repo_path(remote) if remote else ""
            self._project_scope = self.project(remote) if path else self.fallback(self.project_name)
        return self._project_scope

    def scope_id(self, scope: str) -> str:
        return self.project_scope_id() if scope == "project" else self.personal_scope_id()

    def _lookup_remote(self) -> str | None:
        try:
            return self._remote_lookup(self.cwd)
        except Exception:
            return None
