"""Example: annotate a template, customize a run and resolve its plan."""

import asyncio

from homeflow import (
    CustomizationState,
    DecisionOption,
    DecisionPoint,
    FlowGraph,
    Operation,
    Phase,
    Project,
    ProjectRun,
    WorkflowEngine,
    WorkflowStep,
    get_repository,
    incorporate_phase,
)
from homeflow.customization import add_planned_work


def build_template() -> Project:
    def phase(pid, name, *operations):
        return Phase(id=pid, name=name, operations=operations)

    def op(oid, name, *steps):
        return Operation(id=oid, name=name, steps=steps or (WorkflowStep(id=f"{oid}-s", step=name),))

    pattern = WorkflowStep(
        id="s-pattern",
        step="Choose a pattern",
        is_decision_point=True,
        decision_point=DecisionPoint(
            question="Which tile pattern?",
            options=[
                DecisionOption(id="o-grid", label="Grid", value="grid"),
                DecisionOption(id="o-diag", label="Diagonal", value="diagonal"),
            ],
        ),
    )
    return Project(
        id="tile-floor",
        name="Tile Floor",
        phases=[
            phase("kickoff", "Kickoff", op("op-kickoff", "Kickoff")),
            phase("planning", "Planning", op("op-pattern", "Pattern", pattern)),
            phase("ordering", "Ordering", op("op-order", "Order tile")),
            phase(
                "prep",
                "Surface Prep",
                op("op-concrete", "Concrete subfloor"),
                op("op-wood", "Wood subfloor"),
                op("op-crack", "Crack repair"),
                op("op-seal", "Seal repairs"),
            ),
            phase("close", "Close Project", op("op-close", "Clean up")),
        ],
    )


async def main():
    template = build_template()
    repo = get_repository()

    # Authoring: branches and optional work live beside the template
    graph = (
        FlowGraph()
        .add_alternate("op-concrete", "op-wood")
        .mark_if_necessary("op-crack", prompt="Are there cracks in the subfloor?")
        .set_dependent("op-seal", "op-crack")
    )
    await repo.save_flow_graph(template.id, graph)

    # Customization: answers, optional work and a phase borrowed from another project
    run = ProjectRun.from_template(template, run_id="run-42")
    trim = Project(
        id="trim",
        name="Baseboard Trim",
        phases=[
            Phase(
                id="install-trim",
                name="Install Trim",
                operations=[Operation(id="op-trim", name="Nail trim")],
            )
        ],
    )
    state = CustomizationState.for_phases(run.phases)
    state = add_planned_work(state, [incorporate_phase(trim, "install-trim")])
    state = (
        state.with_answer("s-pattern", "diagonal")
        .with_answer("op-concrete", "op-wood")
        .with_optional_work("prep", ["op-crack", "op-seal"])
    )

    engine = WorkflowEngine()
    stored = await repo.get_flow_graph(template.id)
    resolution = engine.apply_to_run(run, stored, state, mode="initial-plan")
    if not resolution.result.ok:
        for error in resolution.result.errors:
            print(f"❌ {error.message}")
        return

    print("✅ Plan resolved")
    for phase in resolution.run.phases:
        linked = " (linked)" if phase.is_linked else ""
        print(f"📋 {phase.name}{linked}: {[op.name for op in phase.operations]}")
    for warning in resolution.result.warnings:
        print(f"⚠️  {warning.message}")


if __name__ == "__main__":
    asyncio.run(main())
