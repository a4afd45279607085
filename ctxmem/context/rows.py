"""Shared row model for the context digest.

``build_rows`` owns every decision about what appears and in which order;
formatters only choose how each row looks.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from dataclasses import dataclass
from typing import ClassVar

from ..config import ContextConfig
from ..mode_registry import ModeRegistry
from ..store.types import Observation, SessionSummary
from . import economics as econ
from . import timeline
from .sections import Section

UNTITLED = "Untitled"
SESSION_STARTED = "Session started"


@dataclass(frozen=True)
class Row:
    kind: ClassVar[str] = "row"


@dataclass(frozen=True)
class HeaderRow(Row):
    kind: ClassVar[str] = "header"
    project: str
    timestamp: str


@dataclass(frozen=True)
class LegendRow(Row):
    kind: ClassVar[str] = "legend"
    entries: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class ColumnKeyRow(Row):
    kind: ClassVar[str] = "column_key"


@dataclass(frozen=True)
class ContextIndexRow(Row):
    kind: ClassVar[str] = "context_index"


@dataclass(frozen=True)
class EconomicsRow(Row):
    kind: ClassVar[str] = "economics"
    count: int
    read_tokens: int
    discovery_tokens: int
    savings: int
    savings_percent: int
    show_amount: bool
    show_percent: bool

    @property
    def shows_savings(self) -> bool:
        return self.discovery_tokens > 0 and (self.show_amount or self.show_percent)


@dataclass(frozen=True)
class DayHeaderRow(Row):
    kind: ClassVar[str] = "day_header"
    label: str


@dataclass(frozen=True)
class SummaryMarkerRow(Row):
    kind: ClassVar[str] = "summary_marker"
    summary_id: int
    request: str
    time_label: str


@dataclass(frozen=True)
class FileGroupRow(Row):
    kind: ClassVar[str] = "file_group"
    name: str


@dataclass(frozen=True)
class GroupEndRow(Row):
    kind: ClassVar[str] = "group_end"


@dataclass(frozen=True)
class ObservationRow(Row):
    observation_id: int
    time_label: str
    show_time: bool
    icon: str
    title: str
    # None when the cell is hidden: display flag off or a zero value.
    read_tokens: int | None
    work_tokens: int | None
    work_icon: str


@dataclass(frozen=True)
class IndexRow(ObservationRow):
    kind: ClassVar[str] = "index_row"


@dataclass(frozen=True)
class FullRow(ObservationRow):
    kind: ClassVar[str] = "full_row"
    detail: str | None = None


@dataclass(frozen=True)
class SectionRow(Row):
    kind: ClassVar[str] = "section"
    section: Section


@dataclass(frozen=True)
class LastSummaryRow(Row):
    kind: ClassVar[str] = "last_summary"
    fields: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class PreviouslyRow(Row):
    kind: ClassVar[str] = "previously"
    message: str


@dataclass(frozen=True)
class CallToActionRow(Row):
    kind: ClassVar[str] = "call_to_action"
    discovery_tokens: int
    read_tokens: int


@dataclass(frozen=True)
class EmptyNoticeRow(Row):
    kind: ClassVar[str] = "empty_notice"


def full_detail_text(obs: Observation, field: str) -> str | None:
    if field == "facts":
        return "\n".join(obs.facts) or None
    return obs.narrative or None


def _observation_row(
    obs: Observation,
    *,
    full: bool,
    time_label: str,
    show_time: bool,
    registry: ModeRegistry,
    config: ContextConfig,
) -> ObservationRow:
    read_tokens = econ.estimate_read_tokens(obs)
    common = dict(
        observation_id=obs.id,
        time_label=time_label,
        show_time=show_time,
        icon=registry.icon(obs.type),
        title=obs.title or UNTITLED,
        read_tokens=read_tokens if config.show_read_tokens and read_tokens > 0 else None,
        work_tokens=(
            obs.discovery_tokens
            if config.show_work_tokens and obs.discovery_tokens > 0
            else None
        ),
        work_icon=registry.work_icon(obs.type),
    )
    if full:
        return FullRow(**common, detail=full_detail_text(obs, config.full_observation_field))
    return IndexRow(**common)


def day_rows(
    day: timeline.DayGroup,
    full_ids: frozenset[int],
    *,
    registry: ModeRegistry,
    config: ContextConfig,
    base_dir: str | None,
    tz: dt.tzinfo | None,
) -> list[Row]:
    rows: list[Row] = [DayHeaderRow(timeline.day_label(day.day))]
    current_group: str | None = None
    group_open = False
    last_time = ""

    for entry in day.entries:
        if entry.marker is not None:
            if group_open:
                rows.append(GroupEndRow())
                group_open = False
            current_group = None
            last_time = ""
            summary = entry.marker.summary
            rows.append(
                SummaryMarkerRow(
                    summary_id=summary.id,
                    request=summary.request or SESSION_STARTED,
                    time_label=timeline.marker_time_label(entry.marker.display_epoch, tz),
                )
            )
            continue

        obs = entry.observation
        assert obs is not None
        group = timeline.file_group(obs, base_dir)
        if group != current_group:
            if group_open:
                rows.append(GroupEndRow())
            rows.append(FileGroupRow(group))
            current_group = group
            group_open = True
            last_time = ""

        time_label = timeline.clock_label(obs.created_at_epoch, tz)
        show_time = time_label != last_time
        last_time = time_label
        full = obs.id in full_ids
        if full:
            # Full entries sit outside the table; the next index row reopens it.
            rows.append(GroupEndRow())
            group_open = False
            current_group = None
        rows.append(
            _observation_row(
                obs,
                full=full,
                time_label=time_label,
                show_time=show_time,
                registry=registry,
                config=config,
            )
        )

    if group_open:
        rows.append(GroupEndRow())
    return rows


def should_show_last_summary(
    config: ContextConfig,
    summary: SessionSummary | None,
    newest: Observation | None,
) -> bool:
    if not config.show_last_summary or summary is None or not summary.has_findings():
        return False
    if newest is not None and summary.created_at_epoch < newest.created_at_epoch:
        return False
    return True


def build_rows(
    *,
    project: str,
    observations: Sequence[Observation],
    summaries: Sequence[SessionSummary],
    config: ContextConfig,
    registry: ModeRegistry,
    now: dt.datetime,
    tz: dt.tzinfo | None = None,
    base_dir: str | None = None,
    sections: Sequence[Section] = (),
    prior_message: str = "",
) -> list[Row]:
    """Assemble the digest rows.

    ``observations`` and ``summaries`` are newest first, as the store returns
    them; ``summaries`` may include one row past the session budget.
    """

    totals = econ.aggregate(observations)
    rows: list[Row] = [
        HeaderRow(project=project, timestamp=timeline.header_timestamp(now, tz)),
        LegendRow(tuple((registry.icon(t), t) for t in registry.type_ids)),
        ColumnKeyRow(),
        ContextIndexRow(),
    ]
    if config.shows_economics and observations:
        rows.append(
            EconomicsRow(
                count=totals.count,
                read_tokens=totals.total_read_tokens,
                discovery_tokens=totals.total_discovery_tokens,
                savings=totals.savings,
                savings_percent=totals.savings_percent,
                show_amount=config.show_savings_amount,
                show_percent=config.show_savings_percent,
            )
        )

    markers = timeline.summary_markers(summaries, config.session_count)
    entries = timeline.merge(observations, markers)
    full_ids = timeline.full_detail_ids(observations, config.full_observation_count)
    for day in timeline.group_by_day(entries, tz):
        rows.extend(
            day_rows(day, full_ids, registry=registry, config=config, base_dir=base_dir, tz=tz)
        )

    rows.extend(SectionRow(section) for section in sections)

    latest_summary = summaries[0] if summaries else None
    newest_obs = observations[0] if observations else None
    if latest_summary is not None and should_show_last_summary(
        config, latest_summary, newest_obs
    ):
        fields = (
            ("Investigated", latest_summary.investigated),
            ("Learned", latest_summary.learned),
            ("Completed", latest_summary.completed),
            ("Next Steps", latest_summary.next_steps),
        )
        rows.append(LastSummaryRow(tuple((label, value) for label, value in fields if value)))

    if prior_message:
        rows.append(PreviouslyRow(prior_message))

    if config.shows_economics and totals.total_discovery_tokens > 0 and totals.savings > 0:
        rows.append(
            CallToActionRow(
                discovery_tokens=totals.total_discovery_tokens,
                read_tokens=totals.total_read_tokens,
            )
        )
    return rows


def empty_rows(project: str, now: dt.datetime, tz: dt.tzinfo | None = None) -> list[Row]:
    return [
        HeaderRow(project=project, timestamp=timeline.header_timestamp(now, tz)),
        EmptyNoticeRow(),
    ]
