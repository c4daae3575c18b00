from __future__ import annotations

import os
from contextlib import closing

import typer
from rich import print
from rich.markup import escape

from . import __version__
from .client import SCOPES, MemoryStackClient, MemoryStackError
from .config import (
    API_KEY_ENV,
    configure_logging,
    get_config_path,
    load_api_key,
    load_config,
    save_api_key,
)
from .extraction import extraction_context_for
from .hook_io import read_payload, write_output
from .hooks import HOOKS, HookContext, run_hook
from .redaction import sanitize_for_storage
from .scope import ScopeResolver
from .utils import resolve_project_name

app = typer.Typer(help="memcapture: MemoryStack memory hooks for Claude Code sessions")


def _client_or_exit(cwd: str) -> MemoryStackClient:
    cfg = load_config()
    configure_logging(cfg.debug)
    api_key = load_api_key(cfg)
    if not api_key:
        print(f"[red]No API key. Set {API_KEY_ENV} or run `memcapture login <key>`.[/red]")
        raise typer.Exit(code=1)
    project = resolve_project_name(cwd, cfg.project)
    return MemoryStackClient(
        api_key,
        base_url=cfg.base_url,
        project_name=project,
        scope=ScopeResolver(cwd, project),
        source_version=cfg.source_version,
    )


def _save(text: str, *, scope: str, source: str) -> None:
    content = sanitize_for_storage(text)
    if not content:
        print("[red]Nothing to save.[/red]")
        raise typer.Exit(code=1)
    with closing(_client_or_exit(os.getcwd())) as client:
        try:
            result = client.add_memory(
                content,
                event_type="manual",
                scope=scope,
                extraction_context=extraction_context_for(source),
            )
        except MemoryStackError as exc:
            print(f"[red]Save failed: {exc}[/red]")
            raise typer.Exit(code=1) from exc
    print(f"[green]Saved to {scope} memory[/green] ({result.count} extracted, id={result.id})")


@app.command()
def hook(event: str = typer.Argument(..., help=f"One of: {', '.join(HOOKS)}")) -> None:
    """Handle one host lifecycle event: JSON on stdin, JSON on stdout."""
    payload = read_payload()
    try:
        ctx = HookContext.from_env()
    except Exception as exc:
        spec = HOOKS.get(event)
        write_output(spec.safe_default(exc) if spec else {})
        return
    write_output(run_hook(event, payload, ctx))


@app.command()
def add(text: str) -> None:
    """Save a note to personal memory."""
    _save(text, scope="personal", source="manual")


@app.command("save-project")
def save_project(text: str) -> None:
    """Save a note to the shared project memory."""
    _save(text, scope="project", source="project")


@app.command()
def search(
    query: str,
    limit: int = typer.Option(5, help="Max results"),
    scope: str = typer.Option("both", help="personal, project or both"),
) -> None:
    """Search stored memories."""
    if scope not in SCOPES:
        print(f"[red]Invalid scope '{scope}'. Allowed scopes: {', '.join(SCOPES)}[/red]")
        raise typer.Exit(code=1)
    with closing(_client_or_exit(os.getcwd())) as client:
        try:
            found = client.search(query, limit=limit, scope=scope)
        except MemoryStackError as exc:
            print(f"[red]Search failed: {exc}[/red]")
            raise typer.Exit(code=1) from exc
    if not found.results:
        print("[yellow]No memories found.[/yellow]")
        return
    for i, record in enumerate(found.results, start=1):
        suffix = f" [dim]{escape(f'[{record.memory_type}]')}[/dim]" if record.memory_type else ""
        print(f"{i}. {escape(record.content)}{suffix}")


@app.command()
def login(api_key: str) -> None:
    """Store an API key in the credentials file."""
    key = api_key.strip()
    if not key:
        print("[red]API key is empty.[/red]")
        raise typer.Exit(code=1)
    path = save_api_key(key, load_config())
    print(f"[green]Credentials saved[/green] to {path}")


@app.command()
def status() -> None:
    """Show configuration and credential status."""
    cfg = load_config()
    cwd = os.getcwd()
    project = resolve_project_name(cwd, cfg.project)
    resolver = ScopeResolver(cwd, project)
    print(f"[bold]memcapture[/bold] {__version__}")
    print(f"- Config: {get_config_path()}")
    print(f"- State dir: {cfg.resolved_state_dir()}")
    print(f"- Base URL: {cfg.base_url}")
    print(f"- Capture mode: {cfg.capture_mode} (turns before: {cfg.turns_before})")
    print(f"- Project: {project}")
    print(f"- Personal scope: {resolver.personal_scope_id()}")
    print(f"- Project scope: {resolver.project_scope_id()}")
    if load_api_key(cfg):
        print("- API key: [green]configured[/green]")
    else:
        print(f"- API key: [red]missing[/red] (set {API_KEY_ENV} or run `memcapture login <key>`)")


if __name__ == "__main__":
    app()
