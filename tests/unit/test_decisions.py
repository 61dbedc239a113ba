from homeflow.decisions import (
    DecisionSession,
    answered_count,
    apply_answer,
    attention_count,
    extract_decisions,
    pending_count,
)


def test_extract_decisions_in_document_order(tile_project):
    items = extract_decisions(tile_project.phases)

    assert [item.id for item in items] == ["s-measure", "s-layout"]
    measure = items[0]
    assert measure.question == "How will you measure the room?"
    assert measure.phase_id == "planning"
    assert measure.phase_name == "Planning"
    assert measure.operation_id == "op-measure"
    assert measure.operation_name == "Measure"
    assert measure.stage == "planning"
    assert [opt.value for opt in measure.options] == ["laser", "tape"]
    assert all(item.status == "pending" for item in items)


def test_extract_decisions_skips_plain_steps(builders):
    phases = [builders.phase("p", operations=[builders.operation("o", steps=[builders.step("s")])])]
    assert extract_decisions(phases) == []


def test_answers_set_status(tile_project):
    items = extract_decisions(tile_project.phases, {"s-measure": "tape", "s-layout": "hexagon"})

    assert items[0].status == "answered"
    assert items[0].selected_value == "tape"
    assert items[1].status == "requires-attention"
    assert (pending_count(items), answered_count(items), attention_count(items)) == (0, 1, 1)


def test_free_text_answer_counts_as_answered(builders):
    step = builders.decision_step("s", "Notes?", [("none", {})])
    step = step.model_copy(
        update={"decision_point": step.decision_point.model_copy(update={"allow_free_text": True})}
    )
    phases = [builders.phase("p", operations=[builders.operation("o", steps=[step])])]

    items = extract_decisions(phases, {"s": "mind the pipes"})
    assert items[0].status == "answered"


def test_apply_answer_returns_new_list(tile_project):
    items = extract_decisions(tile_project.phases)

    updated = apply_answer(items, "s-layout", "grid")
    assert updated[1].status == "answered"
    assert updated[1].selected_value == "grid"
    assert items[1].status == "pending"

    assert apply_answer(items, "unknown", "x") == items


def test_session_blocks_initial_plan_until_answered(tile_project):
    session = DecisionSession.open(tile_project.phases, "initial-plan")
    assert not session.can_finalize()
    issues = session.blocking_issues()
    assert [issue.code for issue in issues] == ["pending-decision", "pending-decision"]
    assert issues[0].node_id == "s-measure"
    assert issues[0].phase_id == "planning"

    session.answer("s-measure", "laser")
    session.answer("s-layout", "grid")
    session.answer("stale-id", "x")

    assert session.can_finalize()
    assert session.answers == {"s-measure": "laser", "s-layout": "grid"}
    assert session.pending_count == 0
    assert session.answered_count == 2


def test_session_flags_stale_answers(tile_project):
    session = DecisionSession.open(
        tile_project.phases, "initial-plan", {"s-measure": "laser", "s-layout": "hexagon"}
    )
    issues = session.blocking_issues()
    assert [issue.code for issue in issues] == ["decision-needs-attention"]
    assert issues[0].node_id == "s-layout"


def test_other_modes_never_block(tile_project):
    for mode in ("final-plan", "unplanned-work", "replan"):
        session = DecisionSession.open(tile_project.phases, mode)
        assert session.pending_count == 2
        assert session.can_finalize()


def test_session_drops_answers_for_unknown_decisions(tile_project):
    session = DecisionSession.open(
        tile_project.phases, "final-plan", {"s-measure": "tape", "op-concrete": "op-wood"}
    )
    assert session.answers == {"s-measure": "tape"}
