from __future__ import annotations

import datetime as dt
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from ..config import ContextConfig, CtxmemConfig, load_config, resolve_context_config
from ..mode_registry import ModeRegistry
from ..store import Observation, RecordStore, SessionSummary
from ..utils import project_name_from_cwd
from . import rows as row_model
from .render import formatter_for
from .sections import Section, SectionProvider, default_providers
from .transcript import TranscriptReader

logger = logging.getLogger(__name__)

T = TypeVar("T")

StoreFactory = Callable[[], RecordStore]
TranscriptLookup = Callable[[str, str], str]


@dataclass(frozen=True)
class ContextRequest:
    cwd: str | None = None
    projects: Sequence[str] = field(default_factory=tuple)
    session_id: str | None = None


def resolve_projects(request: ContextRequest) -> tuple[str, list[str]]:
    """Return the primary project and the full list of projects to query."""

    cwd_project = project_name_from_cwd(request.cwd)
    explicit = [p.strip() for p in request.projects if p and p.strip()]
    if not explicit:
        return cwd_project, [cwd_project]
    projects = list(dict.fromkeys(explicit))
    primary = cwd_project if cwd_project in projects else projects[0]
    return primary, projects


class ContextGenerator:
    def __init__(
        self,
        config: ContextConfig,
        registry: ModeRegistry,
        store_factory: StoreFactory,
        *,
        providers: Sequence[SectionProvider] = (),
        transcript_reader: TranscriptLookup | None = None,
        now: Callable[[], dt.datetime] | None = None,
        tz: dt.tzinfo | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.store_factory = store_factory
        self.providers = list(providers)
        self.transcript_reader = transcript_reader
        self._now = now or (lambda: dt.datetime.now(dt.UTC))
        self.tz = tz

    def generate(self, request: ContextRequest, ansi: bool = False) -> str:
        primary, projects = resolve_projects(request)
        try:
            store = self.store_factory()
        except Exception as exc:  # noqa: BLE001
            logger.warning("context store unavailable", exc_info=exc)
            return ""
        try:
            return self._generate(store, request, primary, projects, ansi)
        except Exception:  # noqa: BLE001
            logger.exception("context assembly failed for %s", ", ".join(projects))
            return ""
        finally:
            store.close()

    def _query(self, name: str, projects: list[str], fn: Callable[[], list[T]]) -> list[T]:
        try:
            return fn()
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "context query %s failed for %s", name, ", ".join(projects), exc_info=exc
            )
            return []

    def _fetch(
        self, store: RecordStore, projects: list[str]
    ) -> tuple[list[Observation], list[SessionSummary]]:
        cfg = self.config
        summary_limit = cfg.session_count + 1
        if len(projects) > 1:
            observations = self._query(
                "recent_filtered_multi",
                projects,
                lambda: store.recent_filtered_multi(
                    projects,
                    cfg.observation_types,
                    cfg.observation_concepts,
                    cfg.total_observation_count,
                ),
            )
            summaries = self._query(
                "recent_summaries_multi",
                projects,
                lambda: store.recent_summaries_multi(projects, summary_limit),
            )
        else:
            project = projects[0]
            observations = self._query(
                "recent_filtered",
                projects,
                lambda: store.recent_filtered(
                    project,
                    cfg.observation_types,
                    cfg.observation_concepts,
                    cfg.total_observation_count,
                ),
            )
            summaries = self._query(
                "recent_summaries",
                projects,
                lambda: store.recent_summaries(project, summary_limit),
            )
        return observations, summaries

    def _sections(self, store: RecordStore, project: str, now: dt.datetime) -> list[Section]:
        sections: list[Section] = []
        for provider in self.providers:
            try:
                section = provider(store, project, now)
            except Exception as exc:  # noqa: BLE001
                logger.debug("context section %r failed", provider, exc_info=exc)
                continue
            if section is not None:
                sections.append(section)
        return sections

    def _prior_message(
        self,
        store: RecordStore,
        request: ContextRequest,
        primary: str,
        observations: list[Observation],
    ) -> str:
        if not self.config.show_last_message or not observations or not request.cwd:
            return ""
        if self.transcript_reader is None:
            return ""
        current = request.session_id
        if current:
            try:
                current = store.memory_session_for(current) or current
            except Exception as exc:  # noqa: BLE001
                logger.debug("session lookup failed for %s", current, exc_info=exc)
        sibling = next(
            (o for o in observations if o.project == primary and o.memory_session_id != current),
            None,
        )
        if sibling is None:
            return ""
        try:
            return self.transcript_reader(request.cwd, sibling.memory_session_id)
        except Exception as exc:  # noqa: BLE001
            logger.debug("prior transcript lookup failed", exc_info=exc)
            return ""

    def _generate(
        self,
        store: RecordStore,
        request: ContextRequest,
        primary: str,
        projects: list[str],
        ansi: bool,
    ) -> str:
        now = self._now()
        formatter = formatter_for(ansi)
        observations, summaries = self._fetch(store, projects)
        if not observations and not summaries:
            return formatter.render(row_model.empty_rows(primary, now, self.tz))

        rows = row_model.build_rows(
            project=primary,
            observations=observations,
            summaries=summaries,
            config=self.config,
            registry=self.registry,
            now=now,
            tz=self.tz,
            base_dir=request.cwd,
            sections=self._sections(store, primary, now),
            prior_message=self._prior_message(store, request, primary, observations),
        )
        return formatter.render(rows)


def build_generator(
    cfg: CtxmemConfig | None = None, db_path: Path | str | None = None
) -> ContextGenerator:
    cfg = cfg or load_config()
    modes_dir = Path(cfg.modes_dir).expanduser() if cfg.modes_dir else None
    registry = ModeRegistry.load(cfg.mode, modes_dir)
    claude_dir = Path(cfg.claude_config_dir).expanduser()
    target = db_path or cfg.db_path
    return ContextGenerator(
        resolve_context_config(cfg, registry),
        registry,
        lambda: RecordStore(target),
        providers=default_providers(claude_dir),
        transcript_reader=TranscriptReader(claude_dir),
    )


def generate_context(
    cwd: str | None = None,
    projects: Sequence[str] | None = None,
    session_id: str | None = None,
    ansi: bool = False,
    *,
    db_path: Path | str | None = None,
) -> str:
    """Render the recent-context digest for ``cwd`` (or explicit projects)."""

    try:
        generator = build_generator(db_path=db_path)
    except Exception as exc:  # noqa: BLE001
        logger.warning("context generator setup failed", exc_info=exc)
        return ""
    request = ContextRequest(
        cwd=cwd if cwd is not None else os.getcwd(),
        projects=tuple(projects or ()),
        session_id=session_id,
    )
    return generator.generate(request, ansi=ansi)
