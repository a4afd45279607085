from __future__ import annotations

import json
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..store.types import Observation

if TYPE_CHECKING:
    from ..mode_registry import ModeRegistry

CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class Economics:
    count: int = 0
    total_read_tokens: int = 0
    total_discovery_tokens: int = 0
    savings: int = 0
    savings_percent: int = 0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def serialize_facts(facts: Iterable[str]) -> str:
    items = list(facts)
    if not items:
        return ""
    return json.dumps(items, ensure_ascii=False, separators=(",", ":"))


def estimate_read_tokens(obs: Observation) -> int:
    """Rough read cost of one digest entry, about four characters per token."""

    chars = (
        len(obs.title or "")
        + len(obs.subtitle or "")
        + len(obs.narrative or "")
        + len(serialize_facts(obs.facts))
    )
    return math.ceil(chars / CHARS_PER_TOKEN)


def aggregate(observations: Iterable[Observation]) -> Economics:
    count = 0
    read = 0
    discovery = 0
    for obs in observations:
        count += 1
        read += estimate_read_tokens(obs)
        discovery += obs.discovery_tokens
    savings = discovery - read
    percent = round_half_up(savings / discovery * 100) if discovery > 0 else 0
    return Economics(
        count=count,
        total_read_tokens=read,
        total_discovery_tokens=discovery,
        savings=savings,
        savings_percent=percent,
    )


def work_cell(obs: Observation, registry: ModeRegistry) -> str | None:
    if obs.discovery_tokens <= 0:
        return None
    return f"{registry.work_icon(obs.type)} {obs.discovery_tokens:,}"
