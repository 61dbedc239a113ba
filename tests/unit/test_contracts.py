import pytest
from pydantic import ValidationError

from homeflow.contracts import (
    DecisionPoint,
    Project,
    ProjectRun,
    WorkflowStep,
    node_ids,
    walk,
)


def test_models_read_camel_case_storage_keys():
    step = WorkflowStep.model_validate(
        {
            "id": "s1",
            "step": "Measure",
            "isDecisionPoint": True,
            "nextStepId": "s2",
            "decisionPoint": {
                "question": "Laser or tape?",
                "allowFreeText": False,
                "options": [{"id": "o1", "label": "Laser", "value": "laser", "nextStepId": "s2"}],
            },
        }
    )
    assert step.is_decision_point
    assert step.next_step_id == "s2"
    assert step.decision_point.options[0].next_step_id == "s2"
    assert step.model_dump(by_alias=True)["decisionPoint"]["stage"] == "planning"


def test_decision_step_needs_options():
    with pytest.raises(ValidationError):
        WorkflowStep(
            id="s1",
            step="Pick",
            is_decision_point=True,
            decision_point=DecisionPoint(question="Which?"),
        )


def test_snapshots_are_immutable(tile_project):
    with pytest.raises(ValidationError):
        tile_project.name = "Other"


def test_find_option(tile_project):
    point = tile_project.phases[1].operations[0].steps[0].decision_point
    assert point.find_option("tape").next_step_id == "s-tape"
    assert point.find_option("ruler") is None


def test_walk_yields_document_order(tile_project):
    refs = list(walk(tile_project.phases[:2]))
    assert [(r.kind, r.node.id) for r in refs] == [
        ("phase", "kickoff"),
        ("operation", "op-kickoff"),
        ("step", "s-kickoff"),
        ("phase", "planning"),
        ("operation", "op-measure"),
        ("step", "s-measure"),
        ("step", "s-laser"),
        ("step", "s-tape"),
    ]
    assert refs[0].parent_id is None
    assert refs[1].parent_id == "kickoff"
    assert refs[2].parent_id == "op-kickoff"


def test_node_ids(tile_project):
    ids = node_ids(tile_project.phases)
    assert {"prep", "op-crack", "s-seal", "close"} <= ids
    assert len(ids) == 6 + 10 + 12


def test_run_from_template_snapshots_phases(tile_project, now):
    run = ProjectRun.from_template(tile_project, run_id="run-1", now=now)

    assert run.id == "run-1"
    assert run.template_id == "tile-floor"
    assert run.name == "Tile Floor"
    assert run.status == "not-started"
    assert run.phases == tile_project.phases
    assert run.created_at == now

    later = run.with_phases(run.phases[:2], now=now.replace(hour=13))
    assert len(later.phases) == 2
    assert later.updated_at.hour == 13
    assert len(run.phases) == 6


def test_project_round_trips_through_json(tile_project):
    restored = Project.model_validate_json(tile_project.model_dump_json(by_alias=True))
    assert restored == tile_project
