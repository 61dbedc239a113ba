"""Shared fixtures: a small tile-floor project and its flow annotations."""

from datetime import datetime, timezone

import pytest

from homeflow.contracts import (
    DecisionOption,
    DecisionPoint,
    Operation,
    Phase,
    Project,
    WorkflowStep,
)
from homeflow.flow import FlowGraph

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def step(step_id, name=None, **kwargs):
    return WorkflowStep(id=step_id, step=name or step_id, **kwargs)


def operation(op_id, name=None, steps=()):
    return Operation(id=op_id, name=name or op_id, steps=steps)


def phase(phase_id, name=None, operations=(), **kwargs):
    return Phase(id=phase_id, name=name or phase_id, operations=operations, **kwargs)


def decision_step(step_id, question, options, **kwargs):
    return WorkflowStep(
        id=step_id,
        step=step_id,
        is_decision_point=True,
        decision_point=DecisionPoint(
            question=question,
            options=[
                DecisionOption(id=f"{step_id}-{value}", label=value.title(), value=value, **extra)
                for value, extra in options
            ],
        ),
        **kwargs,
    )


@pytest.fixture
def builders():
    """Node constructors for tests that need their own graphs."""

    class Builders:
        pass

    b = Builders()
    b.step = step
    b.operation = operation
    b.phase = phase
    b.decision_step = decision_step
    return b


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def tile_project():
    """Kickoff, Planning, Ordering, Surface Prep, Tile Installation, Close Project."""
    measure = decision_step(
        "s-measure",
        "How will you measure the room?",
        [("laser", {"next_step_id": "s-laser"}), ("tape", {"next_step_id": "s-tape"})],
        next_step_id="s-laser",
    )
    layout = decision_step(
        "s-layout",
        "Which tile pattern?",
        [("grid", {}), ("diagonal", {})],
    )
    return Project(
        id="tile-floor",
        name="Tile Floor",
        revision_number=3,
        phases=[
            phase("kickoff", "Kickoff", [operation("op-kickoff", "Kickoff", [step("s-kickoff")])], is_standard=True),
            phase(
                "planning",
                "Planning",
                [operation("op-measure", "Measure", [measure, step("s-laser"), step("s-tape")])],
                is_standard=True,
            ),
            phase("ordering", "Ordering", [operation("op-order", "Order", [step("s-order")])], is_standard=True),
            phase(
                "prep",
                "Surface Prep",
                [
                    operation("op-concrete", "Concrete Subfloor", [step("s-concrete")]),
                    operation("op-wood", "Wood Subfloor", [step("s-wood")]),
                    operation("op-crack", "Crack Repair", [step("s-crack")]),
                    operation("op-seal", "Seal Repairs", [step("s-seal")]),
                ],
            ),
            phase(
                "install",
                "Tile Installation",
                [
                    operation("op-layout", "Layout", [layout]),
                    operation("op-set", "Set Tile", [step("s-set")]),
                ],
            ),
            phase("close", "Close Project", [operation("op-close", "Close", [step("s-close")])], is_standard=True),
        ],
    )


@pytest.fixture
def tile_graph():
    """Concrete/wood subfloor alternates, optional crack repair, dependent sealing."""
    return (
        FlowGraph()
        .add_alternate("op-concrete", "op-wood")
        .mark_if_necessary("op-crack", prompt="Are there cracks in the subfloor?")
        .set_dependent("op-seal", "op-crack")
    )
