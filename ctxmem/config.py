from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .mode_registry import ModeRegistry

DEFAULT_CONFIG_PATH = Path("~/.config/ctxmem/config.json").expanduser()
DEFAULT_CONFIG_PATH_JSONC = Path("~/.config/ctxmem/config.jsonc").expanduser()

DEFAULT_OBSERVATION_TYPES = ["bugfix", "feature", "refactor", "discovery", "decision", "change"]
DEFAULT_OBSERVATION_CONCEPTS = [
    "how-it-works",
    "why-it-exists",
    "what-changed",
    "problem-solution",
    "gotcha",
    "pattern",
    "trade-off",
]
FULL_FIELDS = ("narrative", "facts")

CONFIG_ENV_OVERRIDES = {
    "db_path": "CTXMEM_DB",
    "mode": "CTXMEM_MODE",
    "modes_dir": "CTXMEM_MODES_DIR",
    "claude_config_dir": "CLAUDE_CONFIG_DIR",
    "context_observations": "CTXMEM_CONTEXT_OBSERVATIONS",
    "context_full_count": "CTXMEM_CONTEXT_FULL_COUNT",
    "context_session_count": "CTXMEM_CONTEXT_SESSION_COUNT",
    "context_show_read_tokens": "CTXMEM_CONTEXT_SHOW_READ_TOKENS",
    "context_show_work_tokens": "CTXMEM_CONTEXT_SHOW_WORK_TOKENS",
    "context_show_savings_amount": "CTXMEM_CONTEXT_SHOW_SAVINGS_AMOUNT",
    "context_show_savings_percent": "CTXMEM_CONTEXT_SHOW_SAVINGS_PERCENT",
    "context_observation_types": "CTXMEM_CONTEXT_OBSERVATION_TYPES",
    "context_observation_concepts": "CTXMEM_CONTEXT_OBSERVATION_CONCEPTS",
    "context_full_field": "CTXMEM_CONTEXT_FULL_FIELD",
    "context_show_last_summary": "CTXMEM_CONTEXT_SHOW_LAST_SUMMARY",
    "context_show_last_message": "CTXMEM_CONTEXT_SHOW_LAST_MESSAGE",
}

_INT_KEYS = {"context_observations", "context_full_count", "context_session_count"}
_BOOL_KEYS = {
    "context_show_read_tokens",
    "context_show_work_tokens",
    "context_show_savings_amount",
    "context_show_savings_percent",
    "context_show_last_summary",
    "context_show_last_message",
}
_LIST_KEYS = {"context_observation_types", "context_observation_concepts"}


def get_config_path(path: Path | None = None) -> Path:
    if path is not None:
        return path.expanduser()
    env_path = os.getenv("CTXMEM_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    if not DEFAULT_CONFIG_PATH.exists() and DEFAULT_CONFIG_PATH_JSONC.exists():
        return DEFAULT_CONFIG_PATH_JSONC
    return DEFAULT_CONFIG_PATH


def _strip_json_comments(text: str) -> str:
    out: list[str] = []
    i = 0
    in_string = False
    length = len(text)
    while i < length:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < length:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
            continue
        if text.startswith("//", i):
            end = text.find("\n", i)
            i = length if end == -1 else end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise ValueError("unterminated block comment")
            i = end + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _strip_trailing_commas(text: str) -> str:
    out: list[str] = []
    in_string = False
    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < length:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < length and text[j].isspace():
                j += 1
            if j < length and text[j] in "}]":
                i += 1
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def _parse_config_text(raw: str) -> dict[str, Any]:
    try:
        data = json.loads(_strip_trailing_commas(_strip_json_comments(raw)))
    except (ValueError, json.JSONDecodeError) as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    return _parse_config_text(raw)


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class CtxmemConfig:
    db_path: str = "~/.ctxmem.sqlite"
    mode: str = "code"
    modes_dir: str | None = None
    claude_config_dir: str = "~/.claude"

    context_observations: int = 50
    context_full_count: int = 5
    context_session_count: int = 10
    context_show_read_tokens: bool = True
    context_show_work_tokens: bool = True
    context_show_savings_amount: bool = True
    context_show_savings_percent: bool = True
    context_observation_types: list[str] = field(
        default_factory=lambda: list(DEFAULT_OBSERVATION_TYPES)
    )
    context_observation_concepts: list[str] = field(
        default_factory=lambda: list(DEFAULT_OBSERVATION_CONCEPTS)
    )
    context_full_field: str = "narrative"
    context_show_last_summary: bool = True
    context_show_last_message: bool = False


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _coerce_str_list(value: object, *, key: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, list):
        items: list[str] = []
        for item in value:
            if isinstance(item, str) and item.strip():
                items.append(item.strip())
        return items
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    warnings.warn(f"Invalid list for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


def load_config(path: Path | None = None) -> CtxmemConfig:
    cfg = CtxmemConfig()
    try:
        data = read_config_file(path)
    except (OSError, ValueError) as exc:
        warnings.warn(
            f"Invalid config file {get_config_path(path)}: {exc}", RuntimeWarning, stacklevel=2
        )
        data = {}
    cfg = _apply_values(cfg, data)
    cfg = _apply_values(cfg, get_env_overrides())
    return cfg


def _apply_values(cfg: CtxmemConfig, data: dict[str, Any]) -> CtxmemConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _BOOL_KEYS:
            setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
            continue
        if key in _LIST_KEYS:
            parsed = _coerce_str_list(value, key=key)
            if parsed is not None:
                setattr(cfg, key, parsed)
            continue
        if value is not None and not isinstance(value, str):
            warnings.warn(f"Invalid string for {key}: {value!r}", RuntimeWarning, stacklevel=2)
            continue
        setattr(cfg, key, value)
    return cfg


@dataclass(frozen=True)
class ContextConfig:
    total_observation_count: int = 50
    full_observation_count: int = 5
    session_count: int = 10
    show_read_tokens: bool = True
    show_work_tokens: bool = True
    show_savings_amount: bool = True
    show_savings_percent: bool = True
    observation_types: frozenset[str] = frozenset(DEFAULT_OBSERVATION_TYPES)
    observation_concepts: frozenset[str] = frozenset(DEFAULT_OBSERVATION_CONCEPTS)
    full_observation_field: str = "narrative"
    show_last_summary: bool = True
    show_last_message: bool = False

    @property
    def shows_economics(self) -> bool:
        return (
            self.show_read_tokens
            or self.show_work_tokens
            or self.show_savings_amount
            or self.show_savings_percent
        )


def is_code_mode(mode_id: str) -> bool:
    return mode_id == "code" or mode_id.startswith("code--")


def resolve_context_config(cfg: CtxmemConfig, registry: ModeRegistry) -> ContextConfig:
    """Freeze settings into the per-invocation context config.

    Code modes honor the configured type and concept allowlists; any other
    mode shows every type and concept it defines.
    """

    if is_code_mode(registry.mode_id):
        types = frozenset(cfg.context_observation_types)
        concepts = frozenset(cfg.context_observation_concepts)
    else:
        types = frozenset(registry.type_ids)
        concepts = frozenset(registry.concept_ids)

    full_field = cfg.context_full_field
    if full_field not in FULL_FIELDS:
        warnings.warn(
            f"Invalid value for context_full_field: {full_field!r}", RuntimeWarning, stacklevel=2
        )
        full_field = "narrative"

    return ContextConfig(
        total_observation_count=max(0, cfg.context_observations),
        full_observation_count=max(0, cfg.context_full_count),
        session_count=max(0, cfg.context_session_count),
        show_read_tokens=cfg.context_show_read_tokens,
        show_work_tokens=cfg.context_show_work_tokens,
        show_savings_amount=cfg.context_show_savings_amount,
        show_savings_percent=cfg.context_show_savings_percent,
        observation_types=types,
        observation_concepts=concepts,
        full_observation_field=full_field,
        show_last_summary=cfg.context_show_last_summary,
        show_last_message=cfg.context_show_last_message,
    )
