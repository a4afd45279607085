from __future__ import annotations

import datetime as dt
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from ..store.types import Observation, SessionSummary

GENERAL_GROUP = "General"


@dataclass(frozen=True)
class SummaryMarker:
    summary: SessionSummary
    display_epoch: int


@dataclass(frozen=True)
class TimelineEntry:
    epoch: int
    observation: Observation | None = None
    marker: SummaryMarker | None = None

    @property
    def is_summary(self) -> bool:
        return self.marker is not None

    @property
    def record_id(self) -> int:
        if self.marker is not None:
            return self.marker.summary.id
        assert self.observation is not None
        return self.observation.id


@dataclass(frozen=True)
class DayGroup:
    day: dt.date
    entries: tuple[TimelineEntry, ...]


def full_detail_ids(observations: Iterable[Observation], budget: int) -> frozenset[int]:
    """Ids of the ``budget`` most recently created observations.

    Selection is by id alone, independent of timeline position.
    """

    if budget <= 0:
        return frozenset()
    ids = sorted((obs.id for obs in observations), reverse=True)
    return frozenset(ids[:budget])


def summary_markers(summaries: Sequence[SessionSummary], session_count: int) -> list[SummaryMarker]:
    """Turn newest-first summaries into session markers.

    ``summaries`` may hold one row beyond ``session_count``; that row only
    lends its epoch to the oldest kept marker.
    """

    kept = list(summaries[: max(0, session_count)])
    markers: list[SummaryMarker] = []
    for index, summary in enumerate(kept):
        older = summaries[index + 1] if index + 1 < len(summaries) else None
        display_epoch = older.created_at_epoch if older is not None else summary.created_at_epoch
        markers.append(SummaryMarker(summary=summary, display_epoch=display_epoch))
    return markers


def merge(
    observations: Iterable[Observation], markers: Iterable[SummaryMarker]
) -> list[TimelineEntry]:
    entries = [TimelineEntry(epoch=obs.created_at_epoch, observation=obs) for obs in observations]
    entries.extend(TimelineEntry(epoch=m.display_epoch, marker=m) for m in markers)
    entries.sort(key=lambda e: (e.epoch, 0 if e.is_summary else 1, e.record_id))
    return entries


def local_datetime(epoch: int, tz: dt.tzinfo | None = None) -> dt.datetime:
    moment = dt.datetime.fromtimestamp(epoch / 1000, tz=dt.UTC)
    return moment.astimezone(tz) if tz is not None else moment.astimezone()


def group_by_day(entries: Iterable[TimelineEntry], tz: dt.tzinfo | None = None) -> list[DayGroup]:
    buckets: dict[dt.date, list[TimelineEntry]] = {}
    for entry in entries:
        buckets.setdefault(local_datetime(entry.epoch, tz).date(), []).append(entry)
    return [DayGroup(day=day, entries=tuple(buckets[day])) for day in sorted(buckets)]


def _relative(path: str, base_dir: str | None) -> str:
    if not base_dir or not os.path.isabs(path):
        return path
    try:
        return os.path.relpath(path, base_dir)
    except ValueError:
        return path


def file_group(obs: Observation, base_dir: str | None = None) -> str:
    for files in (obs.files_modified, obs.files_read):
        if files:
            return _relative(files[0], base_dir)
    return GENERAL_GROUP


def _clock(moment: dt.datetime) -> tuple[int, str, str]:
    hour = moment.hour % 12 or 12
    return hour, f"{moment.minute:02d}", "AM" if moment.hour < 12 else "PM"


def clock_label(epoch: int, tz: dt.tzinfo | None = None) -> str:
    hour, minute, half = _clock(local_datetime(epoch, tz))
    return f"{hour}:{minute} {half}"


def marker_time_label(epoch: int, tz: dt.tzinfo | None = None) -> str:
    moment = local_datetime(epoch, tz)
    hour, minute, half = _clock(moment)
    return f"{moment:%b} {moment.day}, {hour}:{minute} {half}"


def day_label(day: dt.date) -> str:
    return f"{day:%b} {day.day}, {day.year}"


def header_timestamp(now: dt.datetime, tz: dt.tzinfo | None = None) -> str:
    moment = now.astimezone(tz) if tz is not None else now.astimezone()
    hour, minute, half = _clock(moment)
    return f"{moment:%Y-%m-%d} {hour}:{minute}{half.lower()} {moment.tzname() or ''}".rstrip()
