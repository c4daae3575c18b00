from __future__ import annotations

from pathlib import Path

import pytest

from memcapture.scope import ScopeResolver, remote_repo_path, sanitize_scope_part


@pytest.mark.parametrize(
    "remote",
    [
        "https://github.com/acme/widgets.git",
        "git@github.com:acme/widgets.git",
        "ssh://git@github.com:22/acme/widgets",
        "https://user@github.com/acme/widgets/",
    ],
)
def test_project_scope_strips_host_and_suffix(remote: str) -> None:
    assert ScopeResolver.project(remote) == "project_acme_widgets"


def test_remote_repo_path_keeps_nested_groups() -> None:
    assert remote_repo_path("git@gitlab.com:group/sub/repo.git") == "group/sub/repo"


def test_personal_scope_is_stable_per_directory(tmp_path: Path) -> None:
    first = ScopeResolver.personal(str(tmp_path))
    assert first == ScopeResolver.personal(str(tmp_path))
    assert first != ScopeResolver.personal(str(tmp_path / "other"))
    assert first.startswith("personal_")
    assert len(first) == len("personal_") + 16


def test_project_scope_falls_back_to_project_name(tmp_path: Path) -> None:
    resolver = ScopeResolver(str(tmp_path), "My App", remote_lookup=lambda _cwd: None)
    assert resolver.project_scope_id() == "project_my_app"


def test_remote_lookup_failure_falls_back(tmp_path: Path) -> None:
    def broken(_cwd: str) -> str:
        raise RuntimeError("git exploded")

    resolver = ScopeResolver(str(tmp_path), "svc", remote_lookup=broken)
    assert resolver.scope_id("project") == "project_svc"


def test_project_scope_is_cached(tmp_path: Path) -> None:
    calls: list[str] = []

    def lookup(cwd: str) -> str:
        calls.append(cwd)
        return "git@github.com:acme/widgets.git"

    resolver = ScopeResolver(str(tmp_path), "widgets", remote_lookup=lookup)
    assert resolver.scope_id("project") == "project_acme_widgets"
    assert resolver.scope_id("project") == "project_acme_widgets"
    assert resolver.scope_id("personal") == ScopeResolver.personal(str(tmp_path))
    assert len(calls) == 1


def test_sanitize_scope_part() -> None:
    assert sanitize_scope_part("Acme/Widgets.v2") == "acme_widgets_v2"
