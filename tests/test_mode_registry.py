import json
from pathlib import Path

import pytest

from ctxmem.mode_registry import (
    FALLBACK_ICON,
    ModeNotFoundError,
    ModeRegistry,
    list_mode_ids,
    load_mode,
    merge_modes,
    parse_inheritance,
)


def _write_mode(modes_dir: Path, mode_id: str, data: dict) -> None:
    modes_dir.mkdir(parents=True, exist_ok=True)
    (modes_dir / f"{mode_id}.json").write_text(json.dumps(data))


def test_packaged_code_mode_has_expected_vocabulary(registry: ModeRegistry) -> None:
    assert registry.type_ids == ["bugfix", "feature", "refactor", "change", "discovery", "decision"]
    assert "gotcha" in registry.concept_ids
    assert registry.icon("bugfix") == "🔴"
    assert registry.work_icon("discovery") == "🔍"
    assert registry.label("decision") == "Decision"


def test_unknown_type_gets_fallback_icon(registry: ModeRegistry) -> None:
    assert registry.icon("mystery") == FALLBACK_ICON
    assert registry.work_icon("mystery") == FALLBACK_ICON
    assert registry.label("mystery") == "mystery"
    assert registry.is_valid_type("mystery") is False
    assert registry.is_valid_type("feature") is True


def test_merge_modes_recurses_into_objects_and_replaces_lists() -> None:
    parent = {"name": "p", "prompts": {"a": 1, "b": 2}, "observation_types": [{"id": "x"}]}
    override = {"prompts": {"b": 3}, "observation_types": [{"id": "y"}]}

    merged = merge_modes(parent, override)

    assert merged == {"name": "p", "prompts": {"a": 1, "b": 3}, "observation_types": [{"id": "y"}]}
    assert parent["prompts"] == {"a": 1, "b": 2}


def test_parse_inheritance_rejects_multiple_levels() -> None:
    assert parse_inheritance("code") is None
    assert parse_inheritance("code--terse") == ("code", "code--terse")
    with pytest.raises(ValueError, match="one level"):
        parse_inheritance("code--terse--extra")


def test_packaged_override_keeps_parent_types() -> None:
    mode = load_mode("code--terse")
    assert mode["name"] == "Code Development (terse)"
    assert [t["id"] for t in mode["observation_types"]][0] == "bugfix"
    assert mode["prompts"]["language"] == "English"
    assert mode["prompts"]["footer"] == "Keep titles under eight words."


def test_missing_mode_falls_back_to_code(tmp_path: Path) -> None:
    _write_mode(tmp_path, "code", {"name": "Code", "observation_types": [{"id": "bugfix"}]})

    mode = load_mode("nonexistent", tmp_path)

    assert mode["name"] == "Code"


def test_missing_override_uses_parent(tmp_path: Path) -> None:
    _write_mode(tmp_path, "code", {"name": "Code"})
    _write_mode(tmp_path, "research", {"name": "Research"})

    assert load_mode("research--missing", tmp_path)["name"] == "Research"


def test_missing_parent_falls_back_to_code_then_applies_override(tmp_path: Path) -> None:
    _write_mode(tmp_path, "code", {"name": "Code", "description": "base"})
    _write_mode(tmp_path, "ghost--extra", {"description": "override"})

    mode = load_mode("ghost--extra", tmp_path)

    assert mode == {"name": "Code", "description": "override"}


def test_missing_code_mode_is_fatal(tmp_path: Path) -> None:
    tmp_path.joinpath("modes").mkdir()
    with pytest.raises(ModeNotFoundError):
        load_mode("code", tmp_path / "modes")


def test_list_mode_ids_includes_packaged_modes() -> None:
    assert {"code", "code--terse", "research"} <= set(list_mode_ids())
