from __future__ import annotations

import datetime as dt
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..utils import truncate

if TYPE_CHECKING:
    from ..store import RecordStore

logger = logging.getLogger(__name__)

SectionProvider = Callable[["RecordStore", str, dt.datetime], "Section | None"]

DECISION_TITLE_LIMIT = 60
RECENT_TITLE_LIMIT = 50
DONE_TASK_STATUSES = {"completed", "done"}


@dataclass(frozen=True)
class Section:
    title: str
    lines: tuple[str, ...]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _epoch_age_ms(now: dt.datetime, epoch: int) -> int:
    return int(now.timestamp() * 1000) - epoch


def decision_age(now: dt.datetime, epoch: int) -> str:
    age_ms = _epoch_age_ms(now, epoch)
    days = age_ms // 86_400_000
    hours = age_ms // 3_600_000
    if days > 0:
        return f"{_plural(days, 'day')} ago"
    if hours > 0:
        return f"{_plural(hours, 'hour')} ago"
    return "just now"


def session_age(now: dt.datetime, epoch: int) -> str:
    minutes = max(0, _epoch_age_ms(now, epoch) // 60_000)
    if minutes < 60:
        return f"{minutes} min ago"
    return f"{minutes // 60}h ago"


def project_status_section(store: RecordStore, project: str, now: dt.datetime) -> Section | None:
    status = store.project_status(project)
    if status is None or status.is_empty():
        return None

    lines: list[str] = []
    if status.open_bugs:
        lines.append(f"- {_plural(status.open_bugs, 'open bug')}")
    if status.active_todos:
        lines.append(f"- {_plural(status.active_todos, 'active todo')}")
    if status.learnings:
        lines.append(f"- {_plural(status.learnings, 'learning')} captured")
    if status.last_decision_title and status.last_decision_epoch is not None:
        title = truncate(status.last_decision_title, DECISION_TITLE_LIMIT)
        lines.append(
            f'- Last decision: "{title}" ({decision_age(now, status.last_decision_epoch)})'
        )
    if status.recent_bugs:
        titles = ", ".join(truncate(t, RECENT_TITLE_LIMIT) for t in status.recent_bugs)
        lines.append(f"- Recent bugs: {titles}")
    if status.recent_learnings:
        titles = ", ".join(truncate(t, RECENT_TITLE_LIMIT) for t in status.recent_learnings)
        lines.append(f"- Recent learnings: {titles}")
    if status.last_session_epoch is not None:
        lines.append(
            f"- Last session: {session_age(now, status.last_session_epoch)}, "
            f"{status.last_session_observations} observations"
        )
    if status.recent_files:
        lines.append(f"- Recent files: {', '.join(status.recent_files)}")
    return Section(title="Project Status", lines=tuple(lines))


def active_loop_section(store: RecordStore, project: str, now: dt.datetime) -> Section | None:
    loop = store.active_loop(project)
    if loop is None:
        return None

    lines: list[str] = []
    if loop.iterations:
        lines.append("### Previous Iterations:")
        for iteration in loop.iterations:
            findings = iteration.key_findings or "No findings recorded"
            obs_count = (
                f" [{iteration.observations_count} obs]" if iteration.observations_count > 0 else ""
            )
            mode = iteration.mode_used or loop.mode
            lines.append(f"- Iter {iteration.iteration_number} ({mode}): {findings}{obs_count}")
    if loop.success_criteria:
        lines.append("### Success Criteria:")
        lines.append(loop.success_criteria)
    if loop.completion_promises:
        logic = "ALL" if loop.promise_logic == "all" else "ANY"
        promises = " ".join(f"<promise>{p}</promise>" for p in loop.completion_promises)
        lines.append(f"### Completion ({logic}): Say {promises} when done.")

    title = (
        f'Active Loop: "{loop.task_description}" '
        f"(Iteration {loop.current_iteration}/{loop.max_iterations}, Mode: {loop.mode})"
    )
    return Section(title=title, lines=tuple(lines))


def _read_json(path: Path) -> object:
    return json.loads(path.read_text(encoding="utf-8"))


def _team_task_counts(tasks_dir: Path) -> tuple[int, int]:
    total = 0
    done = 0
    if not tasks_dir.is_dir():
        return total, done
    for task_file in sorted(tasks_dir.glob("*.json")):
        try:
            task = _read_json(task_file)
        except (OSError, ValueError) as exc:
            logger.debug("skipping unreadable team task %s", task_file, exc_info=exc)
            continue
        total += 1
        if isinstance(task, dict) and task.get("status") in DONE_TASK_STATUSES:
            done += 1
    return total, done


def team_lines(claude_config_dir: Path) -> tuple[str, ...]:
    teams_dir = claude_config_dir / "teams"
    tasks_dir = claude_config_dir / "tasks"
    if not teams_dir.is_dir():
        return ()

    lines: list[str] = []
    for team_dir in sorted(p for p in teams_dir.iterdir() if p.is_dir()):
        config_path = team_dir / "config.json"
        if not config_path.is_file():
            continue
        try:
            config = _read_json(config_path)
        except (OSError, ValueError) as exc:
            logger.debug("skipping malformed team config %s", config_path, exc_info=exc)
            continue
        members = config.get("members") if isinstance(config, dict) else None
        member_count = len(members) if isinstance(members, list) else 0
        total, done = _team_task_counts(tasks_dir / team_dir.name)
        lines.append(
            f'- Team "{team_dir.name}": {_plural(member_count, "member")}, '
            f"{done}/{total} tasks complete"
        )
    return tuple(lines)


def team_section_provider(claude_config_dir: Path) -> SectionProvider:
    def team_section(store: RecordStore, project: str, now: dt.datetime) -> Section | None:
        lines = team_lines(claude_config_dir)
        if not lines:
            return None
        return Section(title="Team Context", lines=lines)

    return team_section


def default_providers(claude_config_dir: Path) -> list[SectionProvider]:
    return [
        project_status_section,
        active_loop_section,
        team_section_provider(claude_config_dir),
    ]
