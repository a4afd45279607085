from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from .types import TimelineWindow
from .utils import observation_from_row, prompt_from_row, summary_from_row

if TYPE_CHECKING:
    from ._store import RecordStore

logger = logging.getLogger(__name__)


def _boundary(rows: list[sqlite3.Row], fallback: int | None) -> int | None:
    if rows:
        return int(rows[-1]["created_at_epoch"])
    return fallback


def _anchor_scans(
    store: RecordStore,
    observation_id: int,
    before: int,
    after: int,
    project_sql: str,
    project_params: list[Any],
) -> tuple[list[sqlite3.Row], list[sqlite3.Row]]:
    backward = store.conn.execute(
        f"""
        SELECT id, created_at_epoch
        FROM observations
        WHERE id <= ? {project_sql}
        ORDER BY id DESC
        LIMIT ?
        """,
        (observation_id, *project_params, before + 1),
    ).fetchall()
    forward = store.conn.execute(
        f"""
        SELECT id, created_at_epoch
        FROM observations
        WHERE id >= ? {project_sql}
        ORDER BY id ASC
        LIMIT ?
        """,
        (observation_id, *project_params, after + 1),
    ).fetchall()
    return backward, forward


def _epoch_scans(
    store: RecordStore,
    epoch: int,
    before: int,
    after: int,
    project_sql: str,
    project_params: list[Any],
) -> tuple[list[sqlite3.Row], list[sqlite3.Row]]:
    backward = store.conn.execute(
        f"""
        SELECT created_at_epoch
        FROM observations
        WHERE created_at_epoch <= ? {project_sql}
        ORDER BY created_at_epoch DESC
        LIMIT ?
        """,
        (epoch, *project_params, before),
    ).fetchall()
    forward = store.conn.execute(
        f"""
        SELECT created_at_epoch
        FROM observations
        WHERE created_at_epoch >= ? {project_sql}
        ORDER BY created_at_epoch ASC
        LIMIT ?
        """,
        (epoch, *project_params, after + 1),
    ).fetchall()
    return backward, forward


def window_around(
    store: RecordStore,
    *,
    observation_id: int | None = None,
    epoch: int | None = None,
    before: int = 10,
    after: int = 10,
    project: str | None = None,
) -> TimelineWindow:
    """Return observations, summaries and prompts around a pivot.

    The window edges come from two bounded keyset scans over observations,
    one walking backward from the pivot and one walking forward. Each edge is
    the epoch of the last row its scan reached, or the pivot epoch when the
    scan found nothing.
    """

    if observation_id is None and epoch is None:
        raise ValueError("window_around needs an observation_id or an epoch")
    before = max(0, int(before))
    after = max(0, int(after))
    project_sql = "AND project = ?" if project else ""
    project_params: list[Any] = [project] if project else []

    try:
        if observation_id is not None:
            if epoch is None:
                anchor = store.conn.execute(
                    "SELECT created_at_epoch FROM observations WHERE id = ?",
                    (observation_id,),
                ).fetchone()
                epoch = int(anchor["created_at_epoch"]) if anchor else None
            backward, forward = _anchor_scans(
                store, observation_id, before, after, project_sql, project_params
            )
        else:
            assert epoch is not None
            backward, forward = _epoch_scans(
                store, epoch, before, after, project_sql, project_params
            )
        if not backward and not forward:
            return TimelineWindow()

        if epoch is None:
            # unknown anchor id: pivot on the nearest row either scan reached
            nearest = backward[0] if backward else forward[0]
            epoch = int(nearest["created_at_epoch"])
        start = _boundary(backward, epoch)
        end = _boundary(forward, epoch)

        observations = store.conn.execute(
            f"""
            SELECT *
            FROM observations
            WHERE created_at_epoch >= ? AND created_at_epoch <= ? {project_sql}
            ORDER BY created_at_epoch ASC, id ASC
            """,
            (start, end, *project_params),
        ).fetchall()
        summaries = store.conn.execute(
            f"""
            SELECT *
            FROM session_summaries
            WHERE created_at_epoch >= ? AND created_at_epoch <= ? {project_sql}
            ORDER BY created_at_epoch ASC, id ASC
            """,
            (start, end, *project_params),
        ).fetchall()
        prompts = store.conn.execute(
            f"""
            SELECT user_prompts.*, sdk_sessions.project, sdk_sessions.memory_session_id
            FROM user_prompts
            JOIN sdk_sessions
                ON sdk_sessions.content_session_id = user_prompts.content_session_id
            WHERE user_prompts.created_at_epoch >= ?
                AND user_prompts.created_at_epoch <= ?
                {project_sql.replace("project", "sdk_sessions.project")}
            ORDER BY user_prompts.created_at_epoch ASC, user_prompts.id ASC
            """,
            (start, end, *project_params),
        ).fetchall()
    except sqlite3.Error as exc:
        logger.warning(
            "timeline window query failed (project=%s, anchor=%s, epoch=%s)",
            project,
            observation_id,
            epoch,
            exc_info=exc,
        )
        return TimelineWindow()

    return TimelineWindow(
        observations=tuple(observation_from_row(r) for r in observations),
        summaries=tuple(summary_from_row(r) for r in summaries),
        prompts=tuple(prompt_from_row(r) for r in prompts),
    )
