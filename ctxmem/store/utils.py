from __future__ import annotations

import datetime as dt
import sqlite3
from collections.abc import Collection

from .. import db
from .types import Observation, SessionSummary, UserPrompt


def placeholders(values: Collection[object]) -> str:
    return ", ".join("?" for _ in values)


def epoch_ms(moment: dt.datetime | None = None) -> int:
    moment = moment or dt.datetime.now(dt.UTC)
    return int(moment.timestamp() * 1000)


def iso_from_epoch(epoch: int) -> str:
    return dt.datetime.fromtimestamp(epoch / 1000, tz=dt.UTC).isoformat()


def _int_or_none(value: object) -> int | None:
    if value is None:
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _non_negative(value: object) -> int:
    parsed = _int_or_none(value)
    return parsed if parsed is not None and parsed > 0 else 0


def observation_from_row(row: sqlite3.Row) -> Observation:
    return Observation(
        id=int(row["id"]),
        project=str(row["project"] or ""),
        memory_session_id=str(row["memory_session_id"] or ""),
        type=str(row["type"] or ""),
        title=str(row["title"] or ""),
        subtitle=row["subtitle"],
        facts=tuple(db.safe_json_list(row["facts"])),
        narrative=row["narrative"],
        concepts=frozenset(db.safe_json_list(row["concepts"])),
        files_read=tuple(db.safe_json_list(row["files_read"])),
        files_modified=tuple(db.safe_json_list(row["files_modified"])),
        prompt_number=_int_or_none(row["prompt_number"]),
        discovery_tokens=_non_negative(row["discovery_tokens"]),
        created_at_epoch=int(row["created_at_epoch"]),
    )


def summary_from_row(row: sqlite3.Row) -> SessionSummary:
    return SessionSummary(
        id=int(row["id"]),
        project=str(row["project"] or ""),
        memory_session_id=str(row["memory_session_id"] or ""),
        request=row["request"],
        investigated=row["investigated"],
        learned=row["learned"],
        completed=row["completed"],
        next_steps=row["next_steps"],
        notes=row["notes"],
        prompt_number=_int_or_none(row["prompt_number"]),
        discovery_tokens=_non_negative(row["discovery_tokens"]),
        created_at_epoch=int(row["created_at_epoch"]),
    )


def prompt_from_row(row: sqlite3.Row) -> UserPrompt:
    keys = row.keys()
    return UserPrompt(
        id=int(row["id"]),
        content_session_id=str(row["content_session_id"]),
        prompt_number=int(row["prompt_number"] or 0),
        text=str(row["prompt_text"] or ""),
        created_at_epoch=int(row["created_at_epoch"]),
        project=row["project"] if "project" in keys else None,
        memory_session_id=row["memory_session_id"] if "memory_session_id" in keys else None,
    )
