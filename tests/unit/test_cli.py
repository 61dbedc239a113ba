import asyncio

import pytest
from typer.testing import CliRunner

import homeflow.persistence as persistence
from homeflow.cli import app
from homeflow.persistence import InMemoryFlowRepository, RunSelections


def _setup_repo(monkeypatch) -> InMemoryFlowRepository:
    repo = InMemoryFlowRepository()
    monkeypatch.setattr(persistence, "_repository_instance", repo)
    return repo


@pytest.fixture
def project_file(tmp_path, tile_project):
    path = tmp_path / "tile-floor.json"
    path.write_text(tile_project.model_dump_json(by_alias=True))
    return path


def test_phases_order_and_check(project_file, tile_project, tmp_path):
    runner = CliRunner()
    result = runner.invoke(app, ["phases", "order", str(project_file)])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "1. Kickoff" in result.stdout
    assert "6. Close Project" in result.stdout

    result = runner.invoke(app, ["phases", "check", str(project_file)])
    assert result.exit_code == 0
    assert "Phase order OK" in result.stdout

    scrambled = tile_project.model_copy(update={"phases": tuple(reversed(tile_project.phases))})
    bad_file = tmp_path / "scrambled.json"
    bad_file.write_text(scrambled.model_dump_json(by_alias=True))
    result = runner.invoke(app, ["phases", "check", str(bad_file)])
    assert result.exit_code == 1
    assert "Close Project must be the last phase" in result.stdout


def test_missing_project_file(tmp_path):
    runner = CliRunner()
    result = runner.invoke(app, ["phases", "order", str(tmp_path / "nope.json")])
    assert result.exit_code == 1
    assert "Project file not found" in result.stdout


def test_decisions_list_uses_run_answers(project_file, monkeypatch):
    repo = _setup_repo(monkeypatch)
    asyncio.run(repo.save_selections(RunSelections(run_id="run-1", answers={"s-measure": "tape"})))

    runner = CliRunner()
    result = runner.invoke(app, ["decisions", "list", str(project_file), "--run-id", "run-1"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "How will you measure the room? = tape" in result.stdout
    assert "1 pending, 1 answered" in result.stdout


def test_flow_commands_edit_stored_graph(monkeypatch):
    repo = _setup_repo(monkeypatch)
    runner = CliRunner()

    result = runner.invoke(app, ["flow", "show", "tile-floor"])
    assert "No flow annotations found" in result.stdout

    for args in (
        ["flow", "alternate", "tile-floor", "op-concrete", "op-wood"],
        ["flow", "optional", "tile-floor", "op-crack", "--prompt", "Cracks?"],
        ["flow", "depend", "tile-floor", "op-seal", "op-crack"],
    ):
        result = runner.invoke(app, args)
        assert result.exit_code == 0, f"{args} failed. Output: {result.stdout}"
        assert "Flow annotations saved" in result.stdout

    graph = asyncio.run(repo.get_flow_graph("tile-floor"))
    assert graph.get_config("op-wood").alternate_ids == ("op-concrete",)
    assert graph.get_config("op-seal").dependent_on == "op-crack"

    result = runner.invoke(app, ["flow", "show", "tile-floor"])
    assert "op-seal\tdependent\tdepends on: op-crack" in result.stdout

    result = runner.invoke(app, ["flow", "depend", "tile-floor", "op-set", "op-wood"])
    assert result.exit_code == 1

    result = runner.invoke(app, ["flow", "alternate", "tile-floor", "op-concrete", "op-wood", "--remove"])
    assert result.exit_code == 0
    graph = asyncio.run(repo.get_flow_graph("tile-floor"))
    assert graph.get_config("op-wood").alternate_ids == ()


def test_run_commands_and_resolve(project_file, tile_graph, monkeypatch):
    repo = _setup_repo(monkeypatch)
    asyncio.run(repo.save_flow_graph("tile-floor", tile_graph))
    runner = CliRunner()

    result = runner.invoke(app, ["resolve", str(project_file), "--run-id", "run-1"])
    assert result.exit_code == 1
    assert "pending-decision" in result.stdout

    for decision_id, value in (("op-concrete", "op-wood"), ("s-measure", "tape"), ("s-layout", "grid")):
        result = runner.invoke(app, ["run", "answer", "run-1", decision_id, value])
        assert result.exit_code == 0
        assert f"Recorded {decision_id} = {value}" in result.stdout
    result = runner.invoke(app, ["run", "include", "run-1", "prep", "op-crack"])
    assert "Included op-crack in prep" in result.stdout

    result = runner.invoke(app, ["resolve", str(project_file), "--run-id", "run-1"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "  Wood Subfloor" in result.stdout
    assert "  Crack Repair" in result.stdout
    assert "Concrete Subfloor" not in result.stdout
    assert "Seal Repairs" not in result.stdout

    selections = asyncio.run(repo.get_selections("run-1"))
    assert selections.if_necessary_work == {"prep": ["op-crack"]}


def test_resolve_rejects_unknown_mode(project_file, monkeypatch):
    _setup_repo(monkeypatch)
    runner = CliRunner()
    result = runner.invoke(app, ["resolve", str(project_file), "--run-id", "r", "--mode", "later"])
    assert result.exit_code == 1
    assert "Unknown mode" in result.stdout
