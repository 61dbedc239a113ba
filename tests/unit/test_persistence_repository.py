from datetime import datetime, timezone

import pytest

import homeflow.persistence as persistence
from homeflow.flow import FlowGraph
from homeflow.persistence import (
    InMemoryFlowRepository,
    RunSelections,
    SQLiteFlowRepository,
    get_repository,
)


def _graph():
    return (
        FlowGraph()
        .add_alternate("op-a", "op-b")
        .mark_if_necessary("op-x", prompt="Need it?")
        .set_dependent("op-y", "op-x")
    )


@pytest.mark.asyncio
async def test_sqlite_repository_crud(tmp_path):
    repo = SQLiteFlowRepository(tmp_path / "flows.db")

    assert await repo.get_flow_graph("tile-floor") is None
    await repo.save_flow_graph("tile-floor", _graph())
    assert await repo.get_flow_graph("tile-floor") == _graph()

    stamp = datetime(2024, 5, 1, tzinfo=timezone.utc)
    selections = RunSelections(
        run_id="run-1",
        answers={"s-measure": "tape"},
        if_necessary_work={"prep": ["op-x"]},
        mode="final-plan",
        updated_at=stamp,
    )
    await repo.save_selections(selections)
    loaded = await repo.get_selections("run-1")
    assert loaded == selections

    assert await repo.list_projects() == ["tile-floor"]


@pytest.mark.asyncio
async def test_sqlite_repository_upserts(tmp_path):
    repo = SQLiteFlowRepository(tmp_path / "flows.db")

    await repo.save_flow_graph("p", _graph())
    await repo.save_flow_graph("p", FlowGraph().add_alternate("a", "b"))
    await repo.save_selections(RunSelections(run_id="r", answers={"a": "b"}))
    await repo.save_selections(RunSelections(run_id="r", answers={"a": "a"}))

    assert await repo.list_projects() == ["p"]
    graph = await repo.get_flow_graph("p")
    assert set(graph.configs) == {"a", "b"}
    selections = await repo.get_selections("r")
    assert selections.answers == {"a": "a"}


@pytest.mark.asyncio
async def test_sqlite_repository_survives_reopen(tmp_path):
    db_path = tmp_path / "flows.db"
    await SQLiteFlowRepository(db_path).save_flow_graph("p", _graph())

    reopened = SQLiteFlowRepository(db_path)
    assert await reopened.get_flow_graph("p") == _graph()


@pytest.mark.asyncio
async def test_inmemory_repository_returns_copies():
    repo = InMemoryFlowRepository()
    selections = RunSelections(run_id="r", if_necessary_work={"prep": ["op-x"]})
    await repo.save_selections(selections)

    loaded = await repo.get_selections("r")
    loaded.if_necessary_work["prep"].append("op-z")

    again = await repo.get_selections("r")
    assert again.if_necessary_work == {"prep": ["op-x"]}
    assert await repo.get_selections("missing") is None


def test_get_repository_defaults_to_memory(monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.delenv("HOMEFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("HOMEFLOW_CONFIG", "does-not-exist.yaml")

    repo = get_repository()
    assert isinstance(repo, InMemoryFlowRepository)
    assert get_repository() is repo


def test_get_repository_rejects_unknown_backend(monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    with pytest.raises(ValueError):
        get_repository("postgresql://localhost/flows")
