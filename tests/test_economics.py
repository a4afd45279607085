from __future__ import annotations

from typing import Any

from ctxmem.context.economics import (
    Economics,
    aggregate,
    estimate_read_tokens,
    round_half_up,
    serialize_facts,
    work_cell,
)
from ctxmem.mode_registry import ModeRegistry
from ctxmem.store.types import Observation


def _obs(**overrides: Any) -> Observation:
    data: dict[str, Any] = {
        "id": 1,
        "project": "proj",
        "memory_session_id": "mem-1",
        "type": "feature",
        "title": "",
        "subtitle": None,
        "facts": (),
        "narrative": None,
        "concepts": frozenset({"how-it-works"}),
        "files_read": (),
        "files_modified": (),
        "prompt_number": None,
        "discovery_tokens": 0,
        "created_at_epoch": 0,
    }
    data.update(overrides)
    return Observation(**data)


def test_aggregate_of_nothing_is_zero() -> None:
    assert aggregate([]) == Economics()


def test_single_observation_savings() -> None:
    obs = _obs(title="t" * 10, subtitle="s" * 10, narrative="n" * 20, discovery_tokens=400)

    econ = aggregate([obs])

    assert estimate_read_tokens(obs) == 10
    assert econ.count == 1
    assert econ.total_read_tokens == 10
    assert econ.total_discovery_tokens == 400
    assert econ.savings == 390
    assert econ.savings_percent == 98


def test_savings_can_be_negative() -> None:
    obs = _obs(narrative="x" * 400, discovery_tokens=50)

    econ = aggregate([obs])

    assert econ.savings == -50
    assert econ.savings_percent == -100


def test_read_tokens_round_up_and_count_serialized_facts() -> None:
    assert estimate_read_tokens(_obs(title="abcde")) == 2
    assert serialize_facts([]) == ""
    assert serialize_facts(["a", "é"]) == '["a","é"]'
    assert estimate_read_tokens(_obs(facts=("a", "b"))) == 3


def test_aggregate_is_deterministic() -> None:
    observations = [
        _obs(id=i, title="title " * i, discovery_tokens=i * 100) for i in range(1, 6)
    ]
    assert aggregate(observations) == aggregate(list(observations))


def test_round_half_up() -> None:
    assert round_half_up(97.5) == 98
    assert round_half_up(2.5) == 3
    assert round_half_up(-0.5) == 0
    assert round_half_up(1.49) == 1


def test_work_cell(registry: ModeRegistry) -> None:
    assert work_cell(_obs(discovery_tokens=0), registry) is None
    assert work_cell(_obs(type="discovery", discovery_tokens=1234), registry) == "🔍 1,234"
