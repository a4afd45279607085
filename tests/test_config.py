import json
from pathlib import Path

import pytest

from ctxmem.config import (
    DEFAULT_OBSERVATION_CONCEPTS,
    DEFAULT_OBSERVATION_TYPES,
    CtxmemConfig,
    get_config_path,
    get_env_overrides,
    load_config,
    read_config_file,
    resolve_context_config,
)
from ctxmem.mode_registry import ModeRegistry


def test_defaults_match_context_settings() -> None:
    cfg = load_config()

    assert cfg.context_observations == 50
    assert cfg.context_full_count == 5
    assert cfg.context_session_count == 10
    assert cfg.context_show_read_tokens is True
    assert cfg.context_show_last_summary is True
    assert cfg.context_show_last_message is False
    assert cfg.context_full_field == "narrative"
    assert cfg.context_observation_types == DEFAULT_OBSERVATION_TYPES


def test_read_config_file_rejects_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not-json}")
    with pytest.raises(ValueError, match="invalid config json"):
        read_config_file(config_path)


def test_read_config_file_accepts_jsonc_comments_and_trailing_commas(tmp_path: Path) -> None:
    config_path = tmp_path / "config.jsonc"
    config_path.write_text(
        """
        {
          // line comment
          /* block comment */
          "mode": "code--terse",
          "context_observation_types": ["bugfix", "feature",],
        }
        """
    )

    data = read_config_file(config_path)

    assert data["mode"] == "code--terse"
    assert data["context_observation_types"] == ["bugfix", "feature"]


def test_read_config_file_preserves_comment_like_text_inside_strings(tmp_path: Path) -> None:
    config_path = tmp_path / "config.jsonc"
    config_path.write_text('{"db_path": "/tmp/a//b,/*c*/.sqlite",}')

    assert read_config_file(config_path)["db_path"] == "/tmp/a//b,/*c*/.sqlite"


def test_read_config_file_rejects_unterminated_block_comment(tmp_path: Path) -> None:
    config_path = tmp_path / "config.jsonc"
    config_path.write_text('{"mode": "code"} /* broken')

    with pytest.raises(ValueError, match="invalid config json"):
        read_config_file(config_path)


def test_get_config_path_prefers_jsonc_when_json_missing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    json_path = tmp_path / "config.json"
    jsonc_path = tmp_path / "config.jsonc"
    jsonc_path.write_text("{}\n")
    monkeypatch.delenv("CTXMEM_CONFIG")
    monkeypatch.setattr("ctxmem.config.DEFAULT_CONFIG_PATH", json_path)
    monkeypatch.setattr("ctxmem.config.DEFAULT_CONFIG_PATH_JSONC", jsonc_path)

    assert get_config_path() == jsonc_path


def test_load_config_reads_file_then_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "context_observations": 20,
                "context_show_savings_amount": False,
                "context_observation_concepts": "gotcha, pattern",
            }
        )
    )
    monkeypatch.setenv("CTXMEM_CONTEXT_OBSERVATIONS", "7")

    cfg = load_config(config_path)

    assert cfg.context_observations == 7
    assert cfg.context_show_savings_amount is False
    assert cfg.context_observation_concepts == ["gotcha", "pattern"]


def test_load_config_warns_and_uses_defaults_on_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{broken-json")

    with pytest.warns(RuntimeWarning, match="Invalid config file"):
        cfg = load_config(config_path)

    assert cfg.context_observations == 50


def test_load_config_invalid_int_env_warns(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("CTXMEM_CONTEXT_FULL_COUNT", "lots")
    with pytest.warns(RuntimeWarning, match="context_full_count"):
        cfg = load_config(tmp_path / "missing.json")
    assert cfg.context_full_count == 5


def test_load_config_invalid_bool_value_warns(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text('{"context_show_read_tokens": [1]}')
    with pytest.warns(RuntimeWarning, match="context_show_read_tokens"):
        cfg = load_config(config_path)
    assert cfg.context_show_read_tokens is True


def test_get_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CTXMEM_MODE", "research")
    monkeypatch.setenv("CTXMEM_DB", "/tmp/other.sqlite")
    overrides = get_env_overrides()
    assert overrides["mode"] == "research"
    assert overrides["db_path"] == "/tmp/other.sqlite"


def test_resolve_context_config_uses_settings_allowlists_in_code_mode() -> None:
    cfg = CtxmemConfig(context_observation_types=["bugfix"], context_full_count=-2)
    registry = ModeRegistry.load("code--terse")

    context_cfg = resolve_context_config(cfg, registry)

    assert context_cfg.observation_types == frozenset({"bugfix"})
    assert context_cfg.observation_concepts == frozenset(DEFAULT_OBSERVATION_CONCEPTS)
    assert context_cfg.full_observation_count == 0


def test_resolve_context_config_uses_mode_vocabulary_outside_code_mode() -> None:
    cfg = CtxmemConfig(mode="research", context_observation_types=["bugfix"])
    registry = ModeRegistry.load("research")

    context_cfg = resolve_context_config(cfg, registry)

    assert context_cfg.observation_types == frozenset({"finding", "experiment", "question"})
    assert context_cfg.observation_concepts == frozenset({"evidence", "method"})


def test_resolve_context_config_rejects_unknown_full_field(registry: ModeRegistry) -> None:
    cfg = CtxmemConfig(context_full_field="body")
    with pytest.warns(RuntimeWarning, match="context_full_field"):
        context_cfg = resolve_context_config(cfg, registry)
    assert context_cfg.full_observation_field == "narrative"
