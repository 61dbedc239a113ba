"""Command line interface for inspecting and authoring homeflow projects."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from homeflow import WorkflowEngine, get_repository
from homeflow.config import configure_logging, load_config
from homeflow.contracts import Project, walk
from homeflow.decisions import answered_count, extract_decisions, pending_count
from homeflow.errors import HomeflowError
from homeflow.flow import FlowGraph
from homeflow.ordering import order_phases, validate_standard_ordering
from homeflow.persistence import RunSelections

app = typer.Typer(help="CLI for homeflow project workflows")

# Command groups
phases_app = typer.Typer(help="Commands for checking phase order")
decisions_app = typer.Typer(help="Commands for listing decision points")
flow_app = typer.Typer(help="Commands for authoring flow annotations")
run_app = typer.Typer(help="Commands for recording a run's selections")

app.add_typer(phases_app, name="phases")
app.add_typer(decisions_app, name="decisions")
app.add_typer(flow_app, name="flow")
app.add_typer(run_app, name="run")

_MODES = ("initial-plan", "final-plan", "unplanned-work", "replan")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at INFO")) -> None:
    """homeflow CLI entry point."""
    config = load_config()
    if verbose:
        config.logging.level = "INFO"
    configure_logging(config)


def _load_project(path: Path) -> Project:
    if not path.exists():
        typer.secho(f"Project file not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        return Project.model_validate_json(path.read_text())
    except ValidationError as exc:
        typer.secho(f"Invalid project file {path}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _load_graph(project_id: str) -> FlowGraph:
    repo = get_repository()
    return asyncio.run(repo.get_flow_graph(project_id)) or FlowGraph()


def _save_graph(project_id: str, graph: FlowGraph) -> None:
    repo = get_repository()
    asyncio.run(repo.save_flow_graph(project_id, graph))


def _load_selections(run_id: str) -> RunSelections:
    repo = get_repository()
    return asyncio.run(repo.get_selections(run_id)) or RunSelections(run_id=run_id)


def _echo_warnings(warnings) -> None:
    for warning in warnings:
        typer.secho(f"warning [{warning.code}] {warning.message}", fg=typer.colors.YELLOW)


@phases_app.command("order")
def phases_order(project_file: Path) -> None:
    """
    Print the phases of a project in canonical order.

    Example:
        homeflow phases order ./tile-floor.json
        # Output: 1. Kickoff
        #         2. Planning
        #         3. Ordering
        #         4. Tile Installation
        #         5. Close Project
    """
    project = _load_project(project_file)
    result = order_phases(project.phases)
    for position, phase in enumerate(result.phases, start=1):
        suffix = f" (linked from {phase.source_project_name})" if phase.is_linked else ""
        typer.echo(f"{position}. {phase.name}{suffix}")
    _echo_warnings(result.warnings)


@phases_app.command("check")
def phases_check(project_file: Path) -> None:
    """Exit with code 1 when canonical phases are out of order."""
    project = _load_project(project_file)
    errors = validate_standard_ordering(project.phases)
    if not errors:
        typer.echo("Phase order OK")
        return
    for error in errors:
        typer.secho(error, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@decisions_app.command("list")
def decisions_list(
    project_file: Path,
    run_id: Optional[str] = typer.Option(None, help="Show answers recorded for this run"),
) -> None:
    """
    List every decision point with its status.

    Example:
        homeflow decisions list ./tile-floor.json --run-id run-42
        # Output: answered  step-7  Planning / Layout: Which pattern? = herringbone
        #         pending   step-9  Install / Grout: Sanded grout?
        #         1 pending, 1 answered
    """
    project = _load_project(project_file)
    answers = _load_selections(run_id).answers if run_id else {}
    items = extract_decisions(project.phases, answers)
    if not items:
        typer.echo("No decision points found")
        return
    for item in items:
        value = f" = {item.selected_value}" if item.selected_value is not None else ""
        typer.echo(
            f"{item.status}\t{item.id}\t{item.phase_name} / {item.operation_name}: "
            f"{item.question}{value}"
        )
    typer.echo(f"{pending_count(items)} pending, {answered_count(items)} answered")


@flow_app.command("show")
def flow_show(project_id: str) -> None:
    """Show the stored flow annotations of a project."""
    graph = _load_graph(project_id)
    if not graph.configs:
        typer.echo("No flow annotations found")
        return
    for node_id, cfg in graph.configs.items():
        details = []
        if cfg.alternate_ids:
            details.append(f"alternates: {', '.join(cfg.alternate_ids)}")
        if cfg.dependent_on:
            details.append(f"depends on: {cfg.dependent_on}")
        if cfg.predecessor_ids:
            details.append(f"after: {', '.join(cfg.predecessor_ids)}")
        if cfg.decision_prompt:
            details.append(f"prompt: {cfg.decision_prompt}")
        kind = "standard" if cfg.is_standard else cfg.type.value
        typer.echo(f"{node_id}\t{kind}" + (f"\t{'; '.join(details)}" if details else ""))
    _echo_warnings(graph.audit())


def _edit_graph(project_id: str, edit) -> None:
    graph = _load_graph(project_id)
    try:
        updated = edit(graph)
    except HomeflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    _save_graph(project_id, updated)
    typer.echo("Flow annotations saved")


@flow_app.command("alternate")
def flow_alternate(
    project_id: str,
    first: str,
    second: str,
    remove: bool = typer.Option(False, "--remove", help="Remove the alternate edge"),
) -> None:
    """Make two nodes mutually exclusive alternates (or undo it)."""
    if remove:
        _edit_graph(project_id, lambda g: g.remove_alternate(first, second))
    else:
        _edit_graph(project_id, lambda g: g.add_alternate(first, second))


@flow_app.command("optional")
def flow_optional(
    project_id: str,
    node_id: str,
    prompt: Optional[str] = typer.Option(None, help="Question shown to the user"),
) -> None:
    """Mark a node as if-necessary work."""
    _edit_graph(project_id, lambda g: g.mark_if_necessary(node_id, prompt))


@flow_app.command("depend")
def flow_depend(project_id: str, node_id: str, target_id: str) -> None:
    """Make a node dependent on an if-necessary node."""
    _edit_graph(project_id, lambda g: g.set_dependent(node_id, target_id))


@flow_app.command("clear")
def flow_clear(project_id: str, node_id: str) -> None:
    """Reset a node to standard work."""
    _edit_graph(project_id, lambda g: g.clear(node_id))


@run_app.command("answer")
def run_answer(run_id: str, decision_id: str, value: str) -> None:
    """Record an answer for a decision step or alternate group."""
    selections = _load_selections(run_id)
    answers = {**selections.answers, decision_id: value}
    repo = get_repository()
    asyncio.run(repo.save_selections(selections.model_copy(update={"answers": answers})))
    typer.echo(f"Recorded {decision_id} = {value}")


@run_app.command("include")
def run_include(run_id: str, phase_id: str, node_id: str) -> None:
    """Opt into an if-necessary node of a phase."""
    selections = _load_selections(run_id)
    work = {k: list(v) for k, v in selections.if_necessary_work.items()}
    chosen = work.setdefault(phase_id, [])
    if node_id not in chosen:
        chosen.append(node_id)
    repo = get_repository()
    asyncio.run(
        repo.save_selections(selections.model_copy(update={"if_necessary_work": work}))
    )
    typer.echo(f"Included {node_id} in {phase_id}")


@app.command("resolve")
def resolve_command(
    project_file: Path,
    run_id: str = typer.Option(..., help="Run whose selections are applied"),
    mode: str = typer.Option("initial-plan", help="initial-plan, final-plan, unplanned-work or replan"),
) -> None:
    """
    Resolve a project with a run's selections and print the plan.

    Exits with code 1 when the selections leave required choices open.

    Example:
        homeflow resolve ./tile-floor.json --run-id run-42 --mode final-plan
    """
    if mode not in _MODES:
        typer.secho(f"Unknown mode: {mode}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    project = _load_project(project_file)
    graph = _load_graph(project.id)
    selections = _load_selections(run_id)

    engine = WorkflowEngine()
    result = engine.resolve(
        project.phases,
        graph,
        answers=selections.answers,
        if_necessary_work=selections.if_necessary_work,
        mode=mode,
    )
    _echo_warnings(result.warnings)
    if not result.ok:
        for error in result.errors:
            typer.secho(f"error [{error.code}] {error.message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    for ref in walk(result.phases):
        indent = {"phase": "", "operation": "  ", "step": "    "}[ref.kind]
        label = ref.node.step if ref.kind == "step" else ref.node.name
        typer.echo(f"{indent}{label}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
