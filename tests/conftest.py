from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from ctxmem.config import CONFIG_ENV_OVERRIDES
from ctxmem.mode_registry import ModeRegistry
from ctxmem.store import RecordStore


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.delenv("CTXMEM_PROJECT", raising=False)
    monkeypatch.setenv("CTXMEM_CONFIG", str(tmp_path / "no-config.json"))
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(tmp_path / "claude"))


@pytest.fixture
def store(tmp_path: Path) -> Iterator[RecordStore]:
    store = RecordStore(tmp_path / "mem.sqlite")
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def registry() -> ModeRegistry:
    return ModeRegistry.load("code")
