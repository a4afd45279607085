from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from ctxmem import mcp_server
from ctxmem.store import RecordStore

BASE = 1_736_089_440_000


def _seed(db_path: Path, count: int = 3, project: str = "proj", **kwargs) -> list[int]:
    with RecordStore(db_path) as store:
        return [
            store.add_observation(
                memory_session_id="mem-1",
                project=project,
                type=kwargs.get("type", "feature"),
                title=f"obs {i}",
                concepts=kwargs.get("concepts", ["how-it-works"]),
                created_at_epoch=BASE + i * 60_000,
            )
            for i in range(count)
        ]


def test_timeline_payload_requires_pivot(tmp_path: Path) -> None:
    payload = mcp_server.timeline_payload(tmp_path / "mem.sqlite")
    assert payload == {"error": "observation_id or epoch is required"}


def test_timeline_payload_returns_window(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    ids = _seed(db_path, 5)

    payload = mcp_server.timeline_payload(db_path, observation_id=ids[2], before=1, after=1)

    assert [o["id"] for o in payload["observations"]] == ids[1:4]
    assert payload["prompts"] == []


def test_timeline_payload_clamps_depth(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    ids = _seed(db_path, 60)

    payload = mcp_server.timeline_payload(
        db_path, observation_id=ids[-1], before=500, after=-3
    )

    assert len(payload["observations"]) == mcp_server.MAX_WINDOW_DEPTH + 1


def test_observations_payload_caps_ids(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    ids = _seed(db_path, 3)

    payload = mcp_server.observations_payload(db_path, [ids[0], 999, *ids[1:]])

    assert sorted(item["id"] for item in payload["items"]) == ids
    assert payload["items"][0]["concepts"] == ["how-it-works"]
    assert mcp_server.observations_payload(db_path, list(range(1000, 1100))) == {"items": []}


def test_recent_payload_applies_filters(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    kept = _seed(db_path, 2)
    _seed(db_path, 1, type="unknown-type")
    _seed(db_path, 1, project="other")

    payload = mcp_server.recent_payload(db_path, project="proj", limit=5)

    assert [item["id"] for item in payload["items"]] == list(reversed(kept))
    assert payload["items"][0]["icon"] == "🟣"
    assert payload["items"][0]["work"] is None


def test_context_payload(tmp_path: Path) -> None:
    db_path = tmp_path / "mem.sqlite"
    _seed(db_path, 1)

    payload = mcp_server.context_payload(db_path, cwd="/work/proj")

    assert payload["context"].startswith("# [proj] recent context, ")
    assert "obs 0" in payload["context"]


def test_context_payload_invalid_mode_is_empty(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    db_path = tmp_path / "mem.sqlite"
    _seed(db_path, 1)
    monkeypatch.setenv("CTXMEM_MODE", "a--b--c")

    assert mcp_server.context_payload(db_path, cwd="/work/proj") == {"context": ""}


def test_build_server_registers_tools(tmp_path: Path) -> None:
    server = mcp_server.build_server(tmp_path / "mem.sqlite")

    tool_names = {tool.name for tool in asyncio.run(server.list_tools())}

    assert {"context", "timeline", "get_observations", "recent"} <= tool_names
