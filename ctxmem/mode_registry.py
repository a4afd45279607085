from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MODE = "code"
FALLBACK_ICON = "📝"


class ModeNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class DisplayHint:
    icon: str
    work_icon: str
    label: str


def default_modes_dir() -> Traversable:
    return resources.files(__package__).joinpath("modes")


def list_mode_ids(modes_dir: Path | Traversable | None = None) -> list[str]:
    root = modes_dir if modes_dir is not None else default_modes_dir()
    if not root.is_dir():
        return []
    return sorted(
        entry.name.removesuffix(".json") for entry in root.iterdir() if entry.name.endswith(".json")
    )


def parse_inheritance(mode_id: str) -> tuple[str, str] | None:
    """Split ``parent--override`` into its parts, or ``None`` for a plain id."""

    parts = mode_id.split("--")
    if len(parts) == 1:
        return None
    if len(parts) > 2:
        raise ValueError(
            f"Invalid mode inheritance: {mode_id}. Only one level of inheritance is supported"
        )
    return parts[0], mode_id


def merge_modes(parent: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` onto ``parent`` without touching either input.

    Nested objects merge key by key; lists and scalars replace.
    """

    merged = dict(parent)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = merge_modes(current, value)
        else:
            merged[key] = value
    return merged


def _load_mode_file(mode_id: str, modes_dir: Path | Traversable) -> dict[str, Any]:
    path = modes_dir.joinpath(f"{mode_id}.json")
    if not path.is_file():
        raise ModeNotFoundError(f"Mode file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ModeNotFoundError(f"Mode file is not an object: {path}")
    return data


def load_mode(mode_id: str, modes_dir: Path | Traversable | None = None) -> dict[str, Any]:
    root = modes_dir if modes_dir is not None else default_modes_dir()
    inheritance = parse_inheritance(mode_id)

    if inheritance is None:
        try:
            return _load_mode_file(mode_id, root)
        except (ModeNotFoundError, json.JSONDecodeError) as exc:
            if mode_id == DEFAULT_MODE:
                raise ModeNotFoundError("code.json mode file missing") from exc
            logger.warning("mode %s not found, falling back to %s", mode_id, DEFAULT_MODE)
            return load_mode(DEFAULT_MODE, root)

    parent_id, override_id = inheritance
    # a missing parent already resolves to the default mode
    parent = load_mode(parent_id, root)

    try:
        override = _load_mode_file(override_id, root)
    except (ModeNotFoundError, json.JSONDecodeError):
        logger.warning("override %s not found, using parent mode %s only", override_id, parent_id)
        return parent
    return merge_modes(parent, override)


class ModeRegistry:
    """Vocabulary and display hints for one resolved mode."""

    def __init__(self, mode: dict[str, Any], mode_id: str = DEFAULT_MODE) -> None:
        self.mode_id = mode_id
        self.name = str(mode.get("name") or mode_id)
        self.description = str(mode.get("description") or "")
        self.types: list[dict[str, Any]] = [
            t for t in mode.get("observation_types") or [] if isinstance(t, dict) and t.get("id")
        ]
        self.concepts: list[dict[str, Any]] = [
            c
            for c in mode.get("observation_concepts") or []
            if isinstance(c, dict) and c.get("id")
        ]
        self.hints: dict[str, DisplayHint] = {
            str(t["id"]): DisplayHint(
                icon=str(t.get("emoji") or FALLBACK_ICON),
                work_icon=str(t.get("work_emoji") or FALLBACK_ICON),
                label=str(t.get("label") or t["id"]),
            )
            for t in self.types
        }

    @classmethod
    def load(
        cls, mode_id: str = DEFAULT_MODE, modes_dir: Path | Traversable | None = None
    ) -> ModeRegistry:
        return cls(load_mode(mode_id, modes_dir), mode_id=mode_id)

    @property
    def type_ids(self) -> list[str]:
        return list(self.hints)

    @property
    def concept_ids(self) -> list[str]:
        return [str(c["id"]) for c in self.concepts]

    def icon(self, obs_type: str) -> str:
        hint = self.hints.get(obs_type)
        return hint.icon if hint else FALLBACK_ICON

    def work_icon(self, obs_type: str) -> str:
        hint = self.hints.get(obs_type)
        return hint.work_icon if hint else FALLBACK_ICON

    def label(self, obs_type: str) -> str:
        hint = self.hints.get(obs_type)
        return hint.label if hint else obs_type

    def is_valid_type(self, obs_type: str) -> bool:
        return obs_type in self.hints
