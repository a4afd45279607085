from __future__ import annotations

from ._store import RecordStore
from .types import (
    ActiveLoop,
    LoopIteration,
    Observation,
    ProjectStatus,
    SessionSummary,
    TimelineWindow,
    UserPrompt,
)

__all__ = [
    "ActiveLoop",
    "LoopIteration",
    "Observation",
    "ProjectStatus",
    "RecordStore",
    "SessionSummary",
    "TimelineWindow",
    "UserPrompt",
]
