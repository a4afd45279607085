from __future__ import annotations

import json
import logging
import sqlite3
from typing import TYPE_CHECKING

from .. import db
from .types import ActiveLoop, LoopIteration, ProjectStatus

if TYPE_CHECKING:
    from ._store import RecordStore

logger = logging.getLogger(__name__)

RECENT_TITLE_LIMIT = 3
RECENT_FILE_LIMIT = 5
LOOP_HISTORY_LIMIT = 5


def _count_tagged(store: RecordStore, project: str, tag_names: tuple[str, ...]) -> int:
    marks = ", ".join("?" for _ in tag_names)
    row = store.conn.execute(
        f"""
        SELECT COUNT(DISTINCT item_tags.item_id) AS count
        FROM item_tags
        JOIN tags ON tags.id = item_tags.tag_id
        JOIN observations
            ON observations.id = item_tags.item_id AND item_tags.item_type = 'observation'
        WHERE tags.name IN ({marks}) AND observations.project = ?
        """,
        (*tag_names, project),
    ).fetchone()
    return int(row["count"] or 0) if row else 0


def _recent_tagged_titles(
    store: RecordStore, project: str, tag_names: tuple[str, ...]
) -> tuple[str, ...]:
    marks = ", ".join("?" for _ in tag_names)
    rows = store.conn.execute(
        f"""
        SELECT DISTINCT observations.id, observations.title, observations.created_at_epoch
        FROM observations
        JOIN item_tags
            ON item_tags.item_id = observations.id AND item_tags.item_type = 'observation'
        JOIN tags ON tags.id = item_tags.tag_id
        WHERE tags.name IN ({marks})
            AND observations.project = ?
            AND observations.title IS NOT NULL
        ORDER BY observations.created_at_epoch DESC
        LIMIT ?
        """,
        (*tag_names, project, RECENT_TITLE_LIMIT),
    ).fetchall()
    return tuple(str(r["title"]) for r in rows)


def _open_tasks(store: RecordStore, project: str) -> int:
    if not store.table_exists("tasks"):
        return 0
    row = store.conn.execute(
        """
        SELECT COUNT(*) AS count FROM tasks
        WHERE status IN ('todo', 'in_progress') AND project = ?
        """,
        (project,),
    ).fetchone()
    return int(row["count"] or 0) if row else 0


def _recent_files(store: RecordStore, project: str) -> tuple[str, ...]:
    rows = store.conn.execute(
        """
        SELECT files_modified FROM observations
        WHERE project = ? AND files_modified IS NOT NULL AND files_modified != '[]'
        ORDER BY created_at_epoch DESC
        LIMIT ?
        """,
        (project, RECENT_FILE_LIMIT),
    ).fetchall()
    files: list[str] = []
    for row in rows:
        for path in db.safe_json_list(row["files_modified"]):
            if path not in files:
                files.append(path)
            if len(files) >= RECENT_FILE_LIMIT:
                return tuple(files)
    return tuple(files)


def project_status(store: RecordStore, project: str) -> ProjectStatus | None:
    """Tag-based bug/todo/learning digest for one project.

    Returns ``None`` when the tag tables are absent.
    """

    if not store.table_exists("tags") or not store.table_exists("item_tags"):
        return None

    decision = store.conn.execute(
        """
        SELECT observations.title, observations.created_at_epoch
        FROM observations
        JOIN item_tags
            ON item_tags.item_id = observations.id AND item_tags.item_type = 'observation'
        JOIN tags ON tags.id = item_tags.tag_id
        WHERE tags.name = 'decision' AND observations.project = ?
        ORDER BY observations.created_at_epoch DESC
        LIMIT 1
        """,
        (project,),
    ).fetchone()

    last_session_epoch: int | None = None
    last_session_observations = 0
    try:
        session = store.conn.execute(
            """
            SELECT sdk_sessions.started_at_epoch,
                (
                    SELECT COUNT(*) FROM observations
                    WHERE observations.memory_session_id = sdk_sessions.memory_session_id
                ) AS obs_count
            FROM sdk_sessions
            WHERE sdk_sessions.project = ?
            ORDER BY sdk_sessions.started_at_epoch DESC
            LIMIT 1
            """,
            (project,),
        ).fetchone()
    except sqlite3.Error as exc:
        logger.debug("last session lookup failed for %s", project, exc_info=exc)
        session = None
    if session is not None:
        last_session_epoch = int(session["started_at_epoch"])
        last_session_observations = int(session["obs_count"] or 0)

    return ProjectStatus(
        open_bugs=_count_tagged(store, project, ("bug",)),
        active_todos=_count_tagged(store, project, ("todo",)) + _open_tasks(store, project),
        learnings=_count_tagged(store, project, ("learning", "decision")),
        last_decision_title=(decision["title"] if decision else None),
        last_decision_epoch=(int(decision["created_at_epoch"]) if decision else None),
        recent_bugs=_recent_tagged_titles(store, project, ("bug",)),
        recent_learnings=_recent_tagged_titles(store, project, ("learning", "decision")),
        last_session_epoch=last_session_epoch,
        last_session_observations=last_session_observations,
        recent_files=_recent_files(store, project),
    )


def _parse_promises(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        logger.debug("skipping malformed completion promises: %.50s", value, exc_info=exc)
        return ()
    if not isinstance(parsed, list):
        return ()
    return tuple(str(p) for p in parsed if p)


def active_loop(store: RecordStore, project: str) -> ActiveLoop | None:
    if not store.table_exists("loop_configs"):
        return None
    config = store.conn.execute(
        "SELECT * FROM loop_configs WHERE project = ? AND enabled = 1",
        (project,),
    ).fetchone()
    if config is None:
        return None

    iterations: list[sqlite3.Row] = []
    if store.table_exists("loop_iterations"):
        iterations = store.conn.execute(
            """
            SELECT * FROM loop_iterations
            WHERE loop_config_id = ?
            ORDER BY iteration_number ASC
            """,
            (config["id"],),
        ).fetchall()

    return ActiveLoop(
        project=project,
        task_description=config["task_description"] or "Unnamed task",
        mode=config["mode"] or "adaptive",
        max_iterations=int(config["max_iterations"] or 0),
        current_iteration=len(iterations) + 1,
        success_criteria=config["success_criteria"],
        completion_promises=_parse_promises(config["completion_promises"]),
        promise_logic="all" if config["promise_logic"] == "all" else "any",
        iterations=tuple(
            LoopIteration(
                iteration_number=int(row["iteration_number"]),
                mode_used=row["mode_used"],
                status=row["status"],
                key_findings=row["key_findings"],
                observations_count=int(row["observations_count"] or 0),
            )
            for row in iterations[-LOOP_HISTORY_LIMIT:]
        ),
    )
