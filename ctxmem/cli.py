from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich import print

from .config import CtxmemConfig, load_config
from .context import generate_context
from .mode_registry import ModeRegistry, list_mode_ids
from .store import RecordStore

app = typer.Typer(help="ctxmem: recent-context digests from coding session memory")


def _db_path(db_path: str | None, cfg: CtxmemConfig | None = None) -> Path:
    if db_path:
        return Path(db_path).expanduser()
    cfg = cfg or load_config()
    return Path(cfg.db_path).expanduser()


def _store(db_path: str | None) -> RecordStore:
    return RecordStore(_db_path(db_path))


@app.command()
def init_db(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Create the database and its tables."""
    store = _store(db_path)
    try:
        print(f"Initialized database at {store.db_path}")
    finally:
        store.close()


@app.command()
def context(
    ansi: bool = typer.Option(False, "--ansi", help="Colored terminal output"),
    project: Optional[List[str]] = typer.Option(
        None, "--project", "-p", help="Project to include (repeatable)"
    ),
    session_id: Optional[str] = typer.Option(None, help="Current session id"),
    cwd: Optional[str] = typer.Option(None, help="Working directory (defaults to $PWD)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Print the recent-context digest."""
    text = generate_context(
        cwd=cwd,
        projects=project,
        session_id=session_id,
        ansi=ansi,
        db_path=_db_path(db_path),
    )
    if text:
        # rich print would parse "[project]" as markup
        typer.echo(text)


@app.command()
def timeline(
    anchor: Optional[int] = typer.Option(None, help="Observation id to center on"),
    epoch: Optional[int] = typer.Option(None, help="Epoch (ms) to center on"),
    before: int = typer.Option(10, min=0, help="Observations before the pivot"),
    after: int = typer.Option(10, min=0, help="Observations after the pivot"),
    project: Optional[str] = typer.Option(None, help="Restrict to one project"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Print the records around an observation or point in time as JSON."""
    if anchor is None and epoch is None:
        print("[red]Pass --anchor or --epoch[/red]")
        raise typer.Exit(code=1)
    store = _store(db_path)
    try:
        window = store.window_around(
            observation_id=anchor, epoch=epoch, before=before, after=after, project=project
        )
    finally:
        store.close()
    typer.echo(json.dumps(window.to_dict(), indent=2, ensure_ascii=False))


@app.command()
def show(observation_id: int, db_path: str = typer.Option(None)) -> None:
    """Print one observation as JSON."""
    store = _store(db_path)
    try:
        obs = store.get_observation(observation_id)
    finally:
        store.close()
    if obs is None:
        print(f"[red]Observation {observation_id} not found[/red]")
        raise typer.Exit(code=1)
    typer.echo(json.dumps(obs.to_dict(), indent=2, ensure_ascii=False))


@app.command()
def modes(
    mode: Optional[str] = typer.Option(None, help="Mode to show (defaults to the configured one)"),
) -> None:
    """List available modes and the active mode's observation types."""
    cfg = load_config()
    modes_dir = Path(cfg.modes_dir).expanduser() if cfg.modes_dir else None
    mode_id = mode or cfg.mode
    try:
        registry = ModeRegistry.load(mode_id, modes_dir)
    except (LookupError, ValueError) as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"[bold]Available modes[/bold]: {', '.join(list_mode_ids(modes_dir))}")
    print(f"[bold]Active[/bold]: {mode_id} ({registry.name})")
    for type_id, hint in registry.hints.items():
        print(f"- {hint.icon} {type_id}: {hint.label} (work {hint.work_icon})")
    concepts = ", ".join(registry.concept_ids)
    print(f"[bold]Concepts[/bold]: {concepts}")


@app.command()
def stats(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show record counts."""
    store = _store(db_path)
    try:
        data = store.stats()
    finally:
        store.close()
    print("[bold]Database[/bold]")
    print(f"- Path: {store.db_path}")
    print(f"- Sessions: {data['sdk_sessions']}")
    print(f"- Observations: {data['observations']}")
    print(f"- Summaries: {data['session_summaries']}")
    print(f"- Prompts: {data['user_prompts']}")
    if data["projects"]:
        print(f"- Projects: {', '.join(data['projects'])}")


@app.command()
def mcp() -> None:
    """Run the MCP server over stdio."""
    from .mcp_server import run

    run()


if __name__ == "__main__":
    app()
