import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from ctxmem.cli import app
from ctxmem.store import RecordStore

runner = CliRunner()


def _seed(db_path: Path) -> list[int]:
    with RecordStore(db_path) as store:
        return [
            store.add_observation(
                memory_session_id="mem-1",
                project=project,
                type="feature",
                title=f"{project} work",
                concepts=["how-it-works"],
                created_at_epoch=1_736_089_440_000 + i * 60_000,
            )
            for i, project in enumerate(["alpha", "beta", "alpha"])
        ]


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("context", "timeline", "init-db", "modes", "stats"):
        assert command in result.stdout


def test_init_db_creates_database(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "mem.sqlite"
    result = runner.invoke(app, ["init-db", "--db-path", str(db_path)])
    assert result.exit_code == 0
    assert "Initialized database" in result.stdout
    assert db_path.exists()


def test_context_prints_digest(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    _seed(db_path)

    result = runner.invoke(app, ["context", "--cwd", "/work/alpha", "--db-path", str(db_path)])

    assert result.exit_code == 0
    assert result.stdout.startswith("# [alpha] recent context, ")
    assert "alpha work" in result.stdout
    assert "beta work" not in result.stdout


def test_context_with_several_projects(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    _seed(db_path)

    result = runner.invoke(
        app,
        ["context", "--cwd", "/work/beta", "-p", "alpha", "-p", "beta", "--db-path", str(db_path)],
    )

    assert result.exit_code == 0
    assert result.stdout.startswith("# [beta] recent context, ")
    assert "alpha work" in result.stdout
    assert "beta work" in result.stdout


def test_context_empty_database(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["context", "--cwd", "/work/fresh", "--db-path", str(tmp_path / "mem.sqlite")]
    )

    assert result.exit_code == 0
    assert "No previous sessions found for this project yet." in result.stdout


def test_context_invalid_mode_prints_nothing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    db_path = tmp_path / "mem.sqlite"
    _seed(db_path)
    monkeypatch.setenv("CTXMEM_MODE", "a--b--c")

    result = runner.invoke(app, ["context", "--cwd", "/work/alpha", "--db-path", str(db_path)])

    assert result.exit_code == 0
    assert result.exception is None
    assert "recent context" not in result.output
    assert "alpha work" not in result.output


def test_timeline_requires_anchor_or_epoch(tmp_path: Path) -> None:
    result = runner.invoke(app, ["timeline", "--db-path", str(tmp_path / "mem.sqlite")])
    assert result.exit_code == 1
    assert "--anchor" in result.stdout


def test_timeline_prints_window_json(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    ids = _seed(db_path)

    result = runner.invoke(
        app,
        [
            "timeline",
            "--anchor",
            str(ids[1]),
            "--before",
            "1",
            "--after",
            "0",
            "--db-path",
            str(db_path),
        ],
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert [o["id"] for o in payload["observations"]] == ids[:2]
    assert payload["summaries"] == []


def test_show_missing_observation(tmp_path: Path) -> None:
    result = runner.invoke(app, ["show", "42", "--db-path", str(tmp_path / "mem.sqlite")])
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_show_observation(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    ids = _seed(db_path)

    result = runner.invoke(app, ["show", str(ids[0]), "--db-path", str(db_path)])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["title"] == "alpha work"


def test_modes_lists_vocabulary() -> None:
    result = runner.invoke(app, ["modes", "--mode", "research"])
    assert result.exit_code == 0
    assert "code--terse" in result.stdout
    assert "finding" in result.stdout
    assert "evidence" in result.stdout


def test_modes_rejects_nested_inheritance() -> None:
    result = runner.invoke(app, ["modes", "--mode", "code--a--b"])
    assert result.exit_code == 1


def test_stats(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    _seed(db_path)

    result = runner.invoke(app, ["stats", "--db-path", str(db_path)])

    assert result.exit_code == 0
    assert "Observations: 3" in result.stdout
    assert "alpha, beta" in result.stdout
