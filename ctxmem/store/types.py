from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Observation:
    id: int
    project: str
    memory_session_id: str
    type: str
    title: str
    subtitle: str | None
    facts: tuple[str, ...]
    narrative: str | None
    concepts: frozenset[str]
    files_read: tuple[str, ...]
    files_modified: tuple[str, ...]
    prompt_number: int | None
    discovery_tokens: int
    created_at_epoch: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project": self.project,
            "memory_session_id": self.memory_session_id,
            "type": self.type,
            "title": self.title,
            "subtitle": self.subtitle,
            "facts": list(self.facts),
            "narrative": self.narrative,
            "concepts": sorted(self.concepts),
            "files_read": list(self.files_read),
            "files_modified": list(self.files_modified),
            "prompt_number": self.prompt_number,
            "discovery_tokens": self.discovery_tokens,
            "created_at_epoch": self.created_at_epoch,
        }


@dataclass(frozen=True)
class SessionSummary:
    id: int
    project: str
    memory_session_id: str
    request: str | None
    investigated: str | None
    learned: str | None
    completed: str | None
    next_steps: str | None
    notes: str | None
    prompt_number: int | None
    discovery_tokens: int
    created_at_epoch: int

    def has_findings(self) -> bool:
        return any((self.investigated, self.learned, self.completed, self.next_steps))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project": self.project,
            "memory_session_id": self.memory_session_id,
            "request": self.request,
            "investigated": self.investigated,
            "learned": self.learned,
            "completed": self.completed,
            "next_steps": self.next_steps,
            "notes": self.notes,
            "prompt_number": self.prompt_number,
            "discovery_tokens": self.discovery_tokens,
            "created_at_epoch": self.created_at_epoch,
        }


@dataclass(frozen=True)
class UserPrompt:
    id: int
    content_session_id: str
    prompt_number: int
    text: str
    created_at_epoch: int
    project: str | None = None
    memory_session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content_session_id": self.content_session_id,
            "prompt_number": self.prompt_number,
            "text": self.text,
            "created_at_epoch": self.created_at_epoch,
            "project": self.project,
            "memory_session_id": self.memory_session_id,
        }


@dataclass(frozen=True)
class TimelineWindow:
    observations: tuple[Observation, ...] = ()
    summaries: tuple[SessionSummary, ...] = ()
    prompts: tuple[UserPrompt, ...] = ()

    def is_empty(self) -> bool:
        return not (self.observations or self.summaries or self.prompts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "observations": [o.to_dict() for o in self.observations],
            "summaries": [s.to_dict() for s in self.summaries],
            "prompts": [p.to_dict() for p in self.prompts],
        }


@dataclass(frozen=True)
class ProjectStatus:
    open_bugs: int = 0
    active_todos: int = 0
    learnings: int = 0
    last_decision_title: str | None = None
    last_decision_epoch: int | None = None
    recent_bugs: tuple[str, ...] = ()
    recent_learnings: tuple[str, ...] = ()
    last_session_epoch: int | None = None
    last_session_observations: int = 0
    recent_files: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return (
            not self.open_bugs
            and not self.active_todos
            and not self.learnings
            and self.last_decision_title is None
        )


@dataclass(frozen=True)
class LoopIteration:
    iteration_number: int
    mode_used: str | None
    status: str | None
    key_findings: str | None
    observations_count: int = 0


@dataclass(frozen=True)
class ActiveLoop:
    project: str
    task_description: str
    mode: str
    max_iterations: int
    current_iteration: int
    success_criteria: str | None
    completion_promises: tuple[str, ...]
    promise_logic: str
    iterations: tuple[LoopIteration, ...]
