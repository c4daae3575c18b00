from __future__ import annotations

import datetime as dt
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import httpx

from . import __version__
from .extraction import extraction_context_for
from .scope import ScopeResolver
from .types import AddResult, MemoryRecord, Profile, SearchResult

logger = logging.getLogger(__name__)

SOURCE_TAG = "claude-code-plugin"
SCOPES = ("personal", "project", "both")


class MemoryStackError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def build_api_base(address: str) -> str:
    trimmed = address.strip().rstrip("/")
    if not trimmed:
        raise ValueError("missing base url")
    if "://" not in trimmed:
        trimmed = f"https://{trimmed}"
    return trimmed if trimmed.endswith("/api/v1") else f"{trimmed}/api/v1"


def _error_snippet(response: httpx.Response, limit: int = 240) -> str:
    try:
        text = response.text
    except Exception:
        return ""
    return text[:limit].strip()


class MemoryStackClient:
    """Thin client for the MemoryStack HTTP API with personal/project scoping."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        project_name: str,
        scope: ScopeResolver,
        source_version: str = __version__,
        http: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("API key is required")
        self.api_key = api_key
        self.base_url = build_api_base(base_url)
        self.project_name = project_name
        self.scope = scope
        self.source_version = source_version
        # The host's invocation deadline bounds these calls; no local timeout.
        self._http = http or httpx.Client(timeout=None)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> MemoryStackClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-API-Key": self.api_key,
            "Accept": "application/json",
            "User-Agent": f"memcapture/{__version__}",
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise MemoryStackError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise MemoryStackError(
                f"{method} {path} failed ({response.status_code}): {_error_snippet(response)}",
                status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise MemoryStackError(f"{method} {path} returned non-json response") from exc
        if not isinstance(payload, dict):
            raise MemoryStackError(f"unexpected_json_type: {type(payload).__name__}")
        return payload

    def add_memory(
        self,
        content: str,
        *,
        event_type: str = "session_turn",
        session_id: str | None = None,
        scope: str = "personal",
        capture_mode: str | None = None,
        memory_type: str | None = None,
        extraction_context: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AddResult:
        record_metadata: dict[str, Any] = {
            "source": SOURCE_TAG,
            "source_version": self.source_version,
            "project": self.project_name,
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            "scope_id": self.scope.scope_id(scope),
            "extraction_context": extraction_context
            or extraction_context_for("project" if scope == "project" else "personal"),
        }
        if session_id:
            record_metadata["session_id"] = session_id
        if capture_mode:
            record_metadata["capture_mode"] = capture_mode
        if event_type:
            record_metadata["type"] = event_type
        for key, value in (metadata or {}).items():
            if value not in (None, ""):
                record_metadata.setdefault(key, value)

        body: dict[str, Any] = {"content": content, "metadata": record_metadata}
        if memory_type:
            body["memory_type"] = memory_type
        payload = self._request("POST", "/memories", json=body)
        memory_ids = payload.get("memory_ids") or []
        return AddResult(
            id=str(memory_ids[0]) if memory_ids else payload.get("id"),
            count=int(payload.get("memories_created") or 0),
            success=bool(payload.get("success", True)),
        )

    def search(
        self,
        query: str,
        *,
        limit: int = 5,
        scope: str = "both",
        mode: str = "hybrid",
    ) -> SearchResult:
        if scope not in SCOPES:
            raise ValueError(f"Invalid scope '{scope}'. Allowed scopes: {', '.join(SCOPES)}")
        params: dict[str, str] = {"query": query, "limit": str(limit), "mode": mode or "hybrid"}
        if scope != "both":
            params["metadata"] = json.dumps({"scope_id": self.scope.scope_id(scope)})
        payload = self._request("GET", "/memories/search", params=params)
        raw_results = payload.get("results") or []
        results = [MemoryRecord.from_api(item) for item in raw_results if isinstance(item, dict)]
        count = payload.get("count")
        return SearchResult(count=int(count) if isinstance(count, int) else len(results), results=results)

    def get_profile(self) -> Profile:
        """Fetch personal and project memories side by side, then recent activity.

        A failed scoped search contributes an empty list and is noted in
        ``Profile.failures``; it never cancels the other search.
        """

        queries = {
            "personal": "coding preferences habits conventions",
            "project": f"{self.project_name} architecture patterns decisions",
        }
        profile = Profile()
        with ThreadPoolExecutor(max_workers=len(queries)) as pool:
            futures = {
                scope: pool.submit(self.search, query, limit=5, scope=scope)
                for scope, query in queries.items()
            }
            for scope, future in futures.items():
                try:
                    results = future.result().results
                except Exception as exc:
                    logger.debug("%s profile search failed: %s", scope, exc)
                    profile.failures.append(scope)
                    results = []
                setattr(profile, scope, results)

        try:
            profile.recent = self.search(
                f"{self.project_name} recent work activity session", limit=3, scope="personal"
            ).results
        except Exception as exc:
            logger.debug("recent activity search failed: %s", exc)
            profile.failures.append("recent")
        return profile
