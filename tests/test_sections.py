from __future__ import annotations

import datetime as dt
import json
from pathlib import Path

from ctxmem.context.sections import (
    active_loop_section,
    decision_age,
    default_providers,
    project_status_section,
    session_age,
    team_lines,
    team_section_provider,
)
from ctxmem.store import RecordStore

NOW = dt.datetime(2025, 1, 5, 15, 4, tzinfo=dt.UTC)
NOW_MS = int(NOW.timestamp() * 1000)
HOUR = 3_600_000
DAY = 24 * HOUR


def _add(store: RecordStore, title: str, epoch: int, **kwargs) -> int:
    return store.add_observation(
        memory_session_id="mem-1",
        project="proj",
        type="feature",
        title=title,
        created_at_epoch=epoch,
        **kwargs,
    )


def test_project_status_section(store: RecordStore) -> None:
    bug = _add(store, "Login fails", NOW_MS - DAY, files_modified=["src/login.py"])
    decision = _add(store, "Use WAL", NOW_MS - 2 * DAY - HOUR)
    store.tag_observation(bug, "bug")
    store.tag_observation(decision, "decision")
    store.add_task("proj", "write docs")
    store.start_session(
        "content-1", "proj", memory_session_id="mem-1", started_at_epoch=NOW_MS - 30 * 60_000
    )

    section = project_status_section(store, "proj", NOW)

    assert section is not None
    assert section.title == "Project Status"
    assert section.lines == (
        "- 1 open bug",
        "- 1 active todo",
        "- 1 learning captured",
        '- Last decision: "Use WAL" (2 days ago)',
        "- Recent bugs: Login fails",
        "- Recent learnings: Use WAL",
        "- Last session: 30 min ago, 2 observations",
        "- Recent files: src/login.py",
    )


def test_project_status_section_truncates_long_titles(store: RecordStore) -> None:
    decision = _add(store, "D" * 70, NOW_MS - HOUR)
    store.tag_observation(decision, "decision")

    section = project_status_section(store, "proj", NOW)

    assert section is not None
    assert f'- Last decision: "{"D" * 57}..." (1 hour ago)' in section.lines
    assert f"- Recent learnings: {'D' * 47}..." in section.lines


def test_project_status_section_absent_without_tags(store: RecordStore) -> None:
    _add(store, "untagged", NOW_MS)

    assert project_status_section(store, "proj", NOW) is None
    assert project_status_section(store, "other", NOW) is None


def test_active_loop_section(store: RecordStore) -> None:
    loop_id = store.configure_loop(
        "proj",
        "Ship v2",
        max_iterations=5,
        success_criteria="All tests pass",
        completion_promises=["DONE"],
    )
    store.record_loop_iteration(
        loop_id, 1, mode_used="explore", key_findings="Found flaky test", observations_count=3
    )
    store.record_loop_iteration(loop_id, 2)

    section = active_loop_section(store, "proj", NOW)

    assert section is not None
    assert section.title == 'Active Loop: "Ship v2" (Iteration 3/5, Mode: adaptive)'
    assert section.lines == (
        "### Previous Iterations:",
        "- Iter 1 (explore): Found flaky test [3 obs]",
        "- Iter 2 (adaptive): No findings recorded",
        "### Success Criteria:",
        "All tests pass",
        "### Completion (ANY): Say <promise>DONE</promise> when done.",
    )


def test_active_loop_section_keeps_last_five_iterations(store: RecordStore) -> None:
    loop_id = store.configure_loop("proj", "Long task", promise_logic="all")
    for number in range(1, 8):
        store.record_loop_iteration(loop_id, number, key_findings=f"step {number}")

    section = active_loop_section(store, "proj", NOW)

    assert section is not None
    assert "(Iteration 8/10" in section.title
    iteration_lines = [line for line in section.lines if line.startswith("- Iter")]
    assert [line.split(":")[0] for line in iteration_lines] == [
        f"- Iter {n} (adaptive)" for n in range(3, 8)
    ]


def test_active_loop_section_skips_disabled_and_malformed_promises(store: RecordStore) -> None:
    store.configure_loop("off", "Paused", enabled=False)
    store.configure_loop("proj", "Task", completion_promises=["DONE"])
    store.conn.execute("UPDATE loop_configs SET completion_promises = '[oops' WHERE project = 'proj'")
    store.conn.commit()

    assert active_loop_section(store, "off", NOW) is None
    section = active_loop_section(store, "proj", NOW)
    assert section is not None
    assert section.lines == ()


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


def test_team_lines(tmp_path: Path) -> None:
    claude_dir = tmp_path / "claude-home"
    _write(claude_dir / "teams" / "alpha" / "config.json", json.dumps({"members": [{}, {}]}))
    _write(claude_dir / "teams" / "beta" / "config.json", "{bad")
    (claude_dir / "teams" / "gamma").mkdir(parents=True)
    _write(claude_dir / "tasks" / "alpha" / "1.json", json.dumps({"status": "completed"}))
    _write(claude_dir / "tasks" / "alpha" / "2.json", json.dumps({"status": "pending"}))
    _write(claude_dir / "tasks" / "alpha" / "3.json", "{bad")

    assert team_lines(claude_dir) == ('- Team "alpha": 2 members, 1/2 tasks complete',)


def test_team_section_absent_without_teams(tmp_path: Path, store: RecordStore) -> None:
    provider = team_section_provider(tmp_path / "nothing-here")

    assert provider(store, "proj", NOW) is None


def test_default_providers_order(tmp_path: Path) -> None:
    providers = default_providers(tmp_path)

    assert providers[:2] == [project_status_section, active_loop_section]
    assert len(providers) == 3


def test_age_labels() -> None:
    assert decision_age(NOW, NOW_MS - 3 * DAY) == "3 days ago"
    assert decision_age(NOW, NOW_MS - DAY) == "1 day ago"
    assert decision_age(NOW, NOW_MS - 5 * HOUR) == "5 hours ago"
    assert decision_age(NOW, NOW_MS - 60_000) == "just now"
    assert session_age(NOW, NOW_MS - 45 * 60_000) == "45 min ago"
    assert session_age(NOW, NOW_MS - 3 * HOUR) == "3h ago"
