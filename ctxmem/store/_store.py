from __future__ import annotations

import datetime as dt
import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from .. import db
from . import status as store_status
from . import window as store_window
from .types import (
    ActiveLoop,
    Observation,
    ProjectStatus,
    SessionSummary,
    TimelineWindow,
    UserPrompt,
)
from .utils import (
    epoch_ms,
    iso_from_epoch,
    observation_from_row,
    placeholders,
    prompt_from_row,
    summary_from_row,
)


class RecordStore:
    """Read side of the memory database, plus writers for seeding it."""

    def __init__(
        self,
        db_path: Path | str = db.DEFAULT_DB_PATH,
        *,
        check_same_thread: bool = True,
    ):
        self.db_path = Path(db_path).expanduser()
        self.conn = db.connect(self.db_path, check_same_thread=check_same_thread)
        db.initialize_schema(self.conn)

    def __enter__(self) -> RecordStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    def table_exists(self, name: str) -> bool:
        return db.table_exists(self.conn, name)

    @staticmethod
    def _now_epoch() -> int:
        return epoch_ms(dt.datetime.now(dt.UTC))

    # Queries

    def recent_filtered(
        self,
        project: str,
        types: Iterable[str],
        concepts: Iterable[str],
        limit: int,
    ) -> list[Observation]:
        return self.recent_filtered_multi([project], types, concepts, limit)

    def recent_filtered_multi(
        self,
        projects: Sequence[str],
        types: Iterable[str],
        concepts: Iterable[str],
        limit: int,
    ) -> list[Observation]:
        type_list = sorted(set(types))
        concept_list = sorted(set(concepts))
        if not projects or not type_list or not concept_list or limit <= 0:
            return []
        project_list = list(dict.fromkeys(projects))
        rows = self.conn.execute(
            f"""
            SELECT *
            FROM observations
            WHERE project IN ({placeholders(project_list)})
                AND type IN ({placeholders(type_list)})
                AND EXISTS (
                    SELECT 1 FROM json_each(
                        CASE WHEN json_valid(observations.concepts)
                            THEN observations.concepts ELSE '[]' END
                    )
                    WHERE json_each.value IN ({placeholders(concept_list)})
                )
            ORDER BY created_at_epoch DESC, id DESC
            LIMIT ?
            """,
            (*project_list, *type_list, *concept_list, limit),
        ).fetchall()
        return [observation_from_row(row) for row in rows]

    def recent_summaries(self, project: str, limit: int) -> list[SessionSummary]:
        return self.recent_summaries_multi([project], limit)

    def recent_summaries_multi(self, projects: Sequence[str], limit: int) -> list[SessionSummary]:
        if not projects or limit <= 0:
            return []
        project_list = list(dict.fromkeys(projects))
        rows = self.conn.execute(
            f"""
            SELECT *
            FROM session_summaries
            WHERE project IN ({placeholders(project_list)})
            ORDER BY created_at_epoch DESC, id DESC
            LIMIT ?
            """,
            (*project_list, limit),
        ).fetchall()
        return [summary_from_row(row) for row in rows]

    def window_around(
        self,
        *,
        observation_id: int | None = None,
        epoch: int | None = None,
        before: int = 10,
        after: int = 10,
        project: str | None = None,
    ) -> TimelineWindow:
        return store_window.window_around(
            self,
            observation_id=observation_id,
            epoch=epoch,
            before=before,
            after=after,
            project=project,
        )

    def get_observation(self, observation_id: int) -> Observation | None:
        row = self.conn.execute(
            "SELECT * FROM observations WHERE id = ?",
            (observation_id,),
        ).fetchone()
        return observation_from_row(row) if row else None

    def get_observations(self, ids: Iterable[int]) -> list[Observation]:
        id_list = list(dict.fromkeys(int(i) for i in ids))
        if not id_list:
            return []
        rows = self.conn.execute(
            f"""
            SELECT * FROM observations
            WHERE id IN ({placeholders(id_list)})
            ORDER BY created_at_epoch DESC, id DESC
            """,
            id_list,
        ).fetchall()
        return [observation_from_row(row) for row in rows]

    def get_prompts(self, content_session_id: str) -> list[UserPrompt]:
        rows = self.conn.execute(
            """
            SELECT user_prompts.*, sdk_sessions.project, sdk_sessions.memory_session_id
            FROM user_prompts
            LEFT JOIN sdk_sessions
                ON sdk_sessions.content_session_id = user_prompts.content_session_id
            WHERE user_prompts.content_session_id = ?
            ORDER BY user_prompts.prompt_number ASC
            """,
            (content_session_id,),
        ).fetchall()
        return [prompt_from_row(row) for row in rows]

    def memory_session_for(self, session_id: str) -> str | None:
        """Map a content session id to its memory session id, if one is known."""

        row = self.conn.execute(
            """
            SELECT memory_session_id FROM sdk_sessions
            WHERE content_session_id = ? OR memory_session_id = ?
            LIMIT 1
            """,
            (session_id, session_id),
        ).fetchone()
        if row is None or not row["memory_session_id"]:
            return None
        return str(row["memory_session_id"])

    def project_status(self, project: str) -> ProjectStatus | None:
        return store_status.project_status(self, project)

    def active_loop(self, project: str) -> ActiveLoop | None:
        return store_status.active_loop(self, project)

    # Writers

    def start_session(
        self,
        content_session_id: str,
        project: str,
        *,
        memory_session_id: str | None = None,
        user_prompt: str | None = None,
        started_at_epoch: int | None = None,
    ) -> int:
        epoch = started_at_epoch if started_at_epoch is not None else self._now_epoch()
        self.conn.execute(
            """
            INSERT INTO sdk_sessions(
                content_session_id, memory_session_id, project, user_prompt,
                started_at, started_at_epoch
            )
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(content_session_id) DO UPDATE SET
                memory_session_id = COALESCE(excluded.memory_session_id, memory_session_id)
            """,
            (
                content_session_id,
                memory_session_id,
                project,
                user_prompt,
                iso_from_epoch(epoch),
                epoch,
            ),
        )
        self.conn.commit()
        row = self.conn.execute(
            "SELECT id FROM sdk_sessions WHERE content_session_id = ?",
            (content_session_id,),
        ).fetchone()
        return int(row["id"])

    def add_observation(
        self,
        *,
        memory_session_id: str,
        project: str,
        type: str,
        title: str,
        subtitle: str | None = None,
        facts: Sequence[str] | None = None,
        narrative: str | None = None,
        concepts: Iterable[str] | None = None,
        files_read: Sequence[str] | None = None,
        files_modified: Sequence[str] | None = None,
        prompt_number: int | None = None,
        discovery_tokens: int = 0,
        created_at_epoch: int | None = None,
    ) -> int:
        epoch = created_at_epoch if created_at_epoch is not None else self._now_epoch()
        cur = self.conn.execute(
            """
            INSERT INTO observations(
                memory_session_id, project, type, title, subtitle, facts, narrative,
                concepts, files_read, files_modified, prompt_number, discovery_tokens,
                created_at, created_at_epoch
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                memory_session_id,
                project,
                type,
                title,
                subtitle,
                db.to_json(list(facts or [])),
                narrative,
                db.to_json(list(concepts or [])),
                db.to_json(list(files_read or [])),
                db.to_json(list(files_modified or [])),
                prompt_number,
                max(0, int(discovery_tokens)),
                iso_from_epoch(epoch),
                epoch,
            ),
        )
        self.conn.commit()
        lastrowid = cur.lastrowid
        if lastrowid is None:
            raise RuntimeError("Failed to insert observation")
        return int(lastrowid)

    def add_session_summary(
        self,
        *,
        memory_session_id: str,
        project: str,
        request: str | None = None,
        investigated: str | None = None,
        learned: str | None = None,
        completed: str | None = None,
        next_steps: str | None = None,
        notes: str | None = None,
        files_read: Sequence[str] | None = None,
        files_edited: Sequence[str] | None = None,
        prompt_number: int | None = None,
        discovery_tokens: int = 0,
        created_at_epoch: int | None = None,
    ) -> int:
        epoch = created_at_epoch if created_at_epoch is not None else self._now_epoch()
        cur = self.conn.execute(
            """
            INSERT INTO session_summaries(
                memory_session_id, project, request, investigated, learned, completed,
                next_steps, notes, files_read, files_edited, prompt_number,
                discovery_tokens, created_at, created_at_epoch
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                memory_session_id,
                project,
                request,
                investigated,
                learned,
                completed,
                next_steps,
                notes,
                db.to_json(list(files_read or [])),
                db.to_json(list(files_edited or [])),
                prompt_number,
                max(0, int(discovery_tokens)),
                iso_from_epoch(epoch),
                epoch,
            ),
        )
        self.conn.commit()
        lastrowid = cur.lastrowid
        if lastrowid is None:
            raise RuntimeError("Failed to insert session summary")
        return int(lastrowid)

    def add_user_prompt(
        self,
        content_session_id: str,
        prompt_number: int,
        text: str,
        *,
        created_at_epoch: int | None = None,
    ) -> int:
        epoch = created_at_epoch if created_at_epoch is not None else self._now_epoch()
        cur = self.conn.execute(
            """
            INSERT INTO user_prompts(
                content_session_id, prompt_number, prompt_text, created_at, created_at_epoch
            )
            VALUES (?, ?, ?, ?, ?)
            """,
            (content_session_id, prompt_number, text, iso_from_epoch(epoch), epoch),
        )
        self.conn.commit()
        lastrowid = cur.lastrowid
        if lastrowid is None:
            raise RuntimeError("Failed to insert user prompt")
        return int(lastrowid)

    def tag_observation(self, observation_id: int, tag: str) -> None:
        now = self._now_epoch()
        name = tag.strip().lower()
        self.conn.execute(
            "INSERT OR IGNORE INTO tags(name, created_at_epoch) VALUES (?, ?)",
            (name, now),
        )
        tag_row = self.conn.execute("SELECT id FROM tags WHERE name = ?", (name,)).fetchone()
        self.conn.execute(
            """
            INSERT OR IGNORE INTO item_tags(tag_id, item_type, item_id, created_at_epoch)
            VALUES (?, 'observation', ?, ?)
            """,
            (tag_row["id"], observation_id, now),
        )
        self.conn.commit()

    def add_task(self, project: str, title: str, *, status: str = "todo") -> int:
        now = self._now_epoch()
        cur = self.conn.execute(
            """
            INSERT INTO tasks(project, title, status, created_at_epoch, updated_at_epoch)
            VALUES (?, ?, ?, ?, ?)
            """,
            (project, title, status, now, now),
        )
        self.conn.commit()
        return int(cur.lastrowid or 0)

    def configure_loop(
        self,
        project: str,
        task_description: str,
        *,
        enabled: bool = True,
        mode: str = "adaptive",
        max_iterations: int = 10,
        success_criteria: str | None = None,
        completion_promises: Sequence[str] | None = None,
        promise_logic: str = "any",
    ) -> int:
        now = self._now_epoch()
        self.conn.execute(
            """
            INSERT INTO loop_configs(
                project, enabled, mode, max_iterations, task_description,
                success_criteria, completion_promises, promise_logic,
                created_at_epoch, updated_at_epoch
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(project) DO UPDATE SET
                enabled = excluded.enabled,
                mode = excluded.mode,
                max_iterations = excluded.max_iterations,
                task_description = excluded.task_description,
                success_criteria = excluded.success_criteria,
                completion_promises = excluded.completion_promises,
                promise_logic = excluded.promise_logic,
                updated_at_epoch = excluded.updated_at_epoch
            """,
            (
                project,
                1 if enabled else 0,
                mode,
                max_iterations,
                task_description,
                success_criteria,
                json.dumps(list(completion_promises)) if completion_promises else None,
                promise_logic,
                now,
                now,
            ),
        )
        self.conn.commit()
        row = self.conn.execute(
            "SELECT id FROM loop_configs WHERE project = ?", (project,)
        ).fetchone()
        return int(row["id"])

    def record_loop_iteration(
        self,
        loop_config_id: int,
        iteration_number: int,
        *,
        mode_used: str | None = None,
        status: str = "completed",
        key_findings: str | None = None,
        observations_count: int = 0,
    ) -> int:
        now = self._now_epoch()
        cur = self.conn.execute(
            """
            INSERT INTO loop_iterations(
                loop_config_id, iteration_number, mode_used, status, key_findings,
                observations_count, started_at_epoch, completed_at_epoch
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                loop_config_id,
                iteration_number,
                mode_used,
                status,
                key_findings,
                observations_count,
                now,
                now,
            ),
        )
        self.conn.commit()
        return int(cur.lastrowid or 0)

    def stats(self) -> dict[str, Any]:
        counts: dict[str, Any] = {}
        for table in ("sdk_sessions", "observations", "session_summaries", "user_prompts"):
            row = self.conn.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()
            counts[table] = int(row["count"] or 0)
        projects = self.conn.execute(
            "SELECT DISTINCT project FROM observations ORDER BY project"
        ).fetchall()
        counts["projects"] = [row["project"] for row in projects]
        return counts
