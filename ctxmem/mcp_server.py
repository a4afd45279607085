from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, Dict, List, Optional, TypeVar

try:
    from mcp.server.fastmcp import FastMCP
except Exception as exc:  # pragma: no cover
    raise SystemExit(
        "mcp package is required for the MCP server. Install with `pip install -e .`"
    ) from exc

from .config import load_config, resolve_context_config
from .context import generate_context
from .context.economics import work_cell
from .mode_registry import ModeRegistry
from .store import RecordStore
from .utils import project_name_from_cwd

T = TypeVar("T")

MAX_WINDOW_DEPTH = 50
MAX_OBSERVATION_IDS = 50


def db_path_from_env() -> Path:
    return Path(os.environ.get("CTXMEM_DB") or load_config().db_path).expanduser()


def with_store(db_path: Path | str, handler: Callable[[RecordStore], T]) -> T:
    store = RecordStore(db_path)
    try:
        return handler(store)
    finally:
        store.close()


def context_payload(
    db_path: Path | str,
    *,
    cwd: str,
    projects: Optional[List[str]] = None,
    session_id: Optional[str] = None,
) -> Dict[str, Any]:
    text = generate_context(cwd=cwd, projects=projects, session_id=session_id, db_path=db_path)
    return {"context": text}


def timeline_payload(
    db_path: Path | str,
    *,
    observation_id: Optional[int] = None,
    epoch: Optional[int] = None,
    before: int = 10,
    after: int = 10,
    project: Optional[str] = None,
) -> Dict[str, Any]:
    if observation_id is None and epoch is None:
        return {"error": "observation_id or epoch is required"}
    before = max(0, min(before, MAX_WINDOW_DEPTH))
    after = max(0, min(after, MAX_WINDOW_DEPTH))
    window = with_store(
        db_path,
        lambda store: store.window_around(
            observation_id=observation_id,
            epoch=epoch,
            before=before,
            after=after,
            project=project,
        ),
    )
    return window.to_dict()


def observations_payload(db_path: Path | str, ids: List[int]) -> Dict[str, Any]:
    wanted = list(ids)[:MAX_OBSERVATION_IDS]
    items = with_store(db_path, lambda store: store.get_observations(wanted))
    return {"items": [obs.to_dict() for obs in items]}


def recent_payload(
    db_path: Path | str,
    *,
    project: str,
    limit: int = 10,
) -> Dict[str, Any]:
    cfg = load_config()
    registry = ModeRegistry.load(cfg.mode, Path(cfg.modes_dir) if cfg.modes_dir else None)
    context_cfg = resolve_context_config(cfg, registry)
    items = with_store(
        db_path,
        lambda store: store.recent_filtered(
            project,
            context_cfg.observation_types,
            context_cfg.observation_concepts,
            max(1, limit),
        ),
    )
    return {
        "items": [
            {
                "id": obs.id,
                "type": obs.type,
                "icon": registry.icon(obs.type),
                "title": obs.title,
                "work": work_cell(obs, registry),
                "created_at_epoch": obs.created_at_epoch,
            }
            for obs in items
        ]
    }


def build_server(db_path: Path | str | None = None) -> FastMCP:
    mcp = FastMCP("ctxmem")
    target = db_path or db_path_from_env()
    default_cwd = os.getcwd()
    default_project = os.environ.get("CTXMEM_PROJECT") or project_name_from_cwd(default_cwd)

    @mcp.tool()
    def context(
        projects: Optional[List[str]] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Recent-context digest for the current project (or the given projects)."""
        return context_payload(target, cwd=default_cwd, projects=projects, session_id=session_id)

    @mcp.tool()
    def timeline(
        observation_id: Optional[int] = None,
        epoch: Optional[int] = None,
        before: int = 10,
        after: int = 10,
        project: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Observations, summaries and prompts around an observation id or epoch (ms)."""
        return timeline_payload(
            target,
            observation_id=observation_id,
            epoch=epoch,
            before=before,
            after=after,
            project=project or default_project,
        )

    @mcp.tool()
    def get_observations(ids: List[int]) -> Dict[str, Any]:
        """Full observation records by id."""
        return observations_payload(target, ids)

    @mcp.tool()
    def recent(limit: int = 10, project: Optional[str] = None) -> Dict[str, Any]:
        """Newest observations that pass the context type and concept filters."""
        return recent_payload(target, project=project or default_project, limit=limit)

    return mcp


def run() -> None:
    server = build_server()
    server.run()


if __name__ == "__main__":
    run()
