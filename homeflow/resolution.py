"""Workflow resolution: turn annotations plus answers into a concrete plan."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .contracts import (
    Node,
    NodeRef,
    Phase,
    ResolutionMode,
    WorkflowStep,
    walk,
)
from .errors import DataIntegrityWarning, ValidationIssue
from .flow import FlowGraph, FlowType

logger = logging.getLogger(__name__)

DependentInclusion = Literal["strict", "automatic"]


class ResolutionResult(BaseModel):
    """Outcome of a resolution.

    When ``ok`` is false, ``phases`` is the unmodified input and ``errors``
    lists everything the user has to fix before the plan can be applied.
    """

    ok: bool
    phases: tuple[Phase, ...] = Field(default_factory=tuple)
    errors: tuple[ValidationIssue, ...] = Field(default_factory=tuple)
    warnings: tuple[DataIntegrityWarning, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)


def _label(node: Node) -> str:
    return node.step if isinstance(node, WorkflowStep) else node.name


def _index(phases: Sequence[Phase], warnings: List[DataIntegrityWarning]) -> Dict[str, NodeRef]:
    index: Dict[str, NodeRef] = {}
    for ref in walk(phases):
        if ref.node.id in index:
            logger.warning(f"Duplicate node id {ref.node.id}; keeping the first occurrence")
            warnings.append(
                DataIntegrityWarning(
                    code="duplicate-node-id",
                    message=f"{ref.kind} {_label(ref.node)!r} reuses id {ref.node.id!r}",
                    node_id=ref.node.id,
                )
            )
            continue
        index[ref.node.id] = ref
    return index


def _map_steps(
    phases: Sequence[Phase], fn: Callable[[WorkflowStep], WorkflowStep]
) -> tuple[Phase, ...]:
    return tuple(
        phase.model_copy(
            update={
                "operations": tuple(
                    op.model_copy(update={"steps": tuple(fn(step) for step in op.steps)})
                    for op in phase.operations
                )
            }
        )
        for phase in phases
    )


# ----------------------------------------------------------------------
# Step 1: decision points
def _apply_decision(
    step: WorkflowStep,
    answers: Mapping[str, str],
    mode: ResolutionMode,
    stamp: datetime,
) -> WorkflowStep:
    point = step.decision_point
    if not step.is_decision_point or point is None or step.id not in answers:
        return step
    value = answers[step.id]
    option = point.find_option(value)
    if option is None and not point.allow_free_text:
        logger.debug(f"Ignoring answer {value!r} for {step.id}: no such option")
        return step

    stamped = point.model_copy(
        update={"selected_value": value, "applied_at": stamp, "applied_in_stage": mode}
    )
    update = {"decision_point": stamped}
    if option is not None:
        update["next_step_id"] = option.next_step_id
        update["alternate_step_id"] = option.alternate_step_id
    return step.model_copy(update=update)


# ----------------------------------------------------------------------
# Step 2: alternate groups
class _GroupChoice(BaseModel):
    key: str
    members: tuple[str, ...]
    chosen: Optional[str] = None
    picked: Optional[str] = None
    problem: Optional[str] = None


def _choose_alternates(
    index: Mapping[str, NodeRef],
    graph: FlowGraph,
    answers: Mapping[str, str],
) -> list[_GroupChoice]:
    order = {node_id: position for position, node_id in enumerate(index)}
    choices: list[_GroupChoice] = []
    for group in graph.alternate_groups():
        members = tuple(sorted((m for m in group if m in index), key=order.__getitem__))
        if not members:
            continue
        choice = _GroupChoice(key=members[0], members=members)
        if len(members) == 1:
            logger.debug(f"Alternate {members[0]} has no siblings left; keeping it")
            choice.chosen = members[0]
            choices.append(choice)
            continue

        picked = list(dict.fromkeys(answers[k] for k in members if k in answers))
        if not picked:
            choice.problem = "alternate-unanswered"
        elif len(picked) > 1:
            choice.problem = "alternate-conflict"
        elif picked[0] not in members:
            choice.problem = "alternate-invalid"
        else:
            choice.chosen = picked[0]
        choice.picked = picked[0] if picked else None
        choices.append(choice)
    return choices


def _group_issue(choice: _GroupChoice, index: Mapping[str, NodeRef]) -> ValidationIssue:
    ref = index[choice.key]
    names = ", ".join(_label(index[m].node) for m in choice.members)
    where = ref.phase.name if ref.kind != "phase" else "the project"
    if choice.problem == "alternate-unanswered":
        message = f"Choose one of {names} in {where}"
    elif choice.problem == "alternate-conflict":
        message = f"Conflicting choices recorded for {names} in {where}"
    else:
        message = f"{choice.picked!r} is not one of {names} in {where}"
    return ValidationIssue(
        code=choice.problem,
        message=message,
        node_id=choice.key,
        phase_id=ref.phase.id,
        operation_id=ref.operation.id if ref.operation is not None else None,
    )


# ----------------------------------------------------------------------
# Steps 3 and 4: optional and dependent work
class _Inclusion:
    """Decides, node by node, whether work belongs in the resolved plan.

    A node is active only when its parent is active and its own flow type
    allows it. Results are memoized; a dependent whose evaluation loops back
    onto itself is dropped.
    """

    def __init__(
        self,
        index: Mapping[str, NodeRef],
        graph: FlowGraph,
        alternates: Mapping[str, bool],
        selected: set[str],
        dependent_inclusion: DependentInclusion,
        warnings: List[DataIntegrityWarning],
    ) -> None:
        self._index = index
        self._graph = graph
        self._alternates = alternates
        self._selected = selected
        self._strict = dependent_inclusion == "strict"
        self._warnings = warnings
        self._memo: Dict[str, bool] = {}
        self._visiting: set[str] = set()

    def is_active(self, node_id: str) -> bool:
        if node_id in self._memo:
            return self._memo[node_id]
        if node_id in self._visiting:
            self._warn("dependency-cycle", f"{node_id!r} depends on itself through its prerequisites", node_id)
            return False
        self._visiting.add(node_id)
        try:
            parent_id = self._index[node_id].parent_id
            active = (parent_id is None or self.is_active(parent_id)) and self._local(node_id)
        finally:
            self._visiting.discard(node_id)
        self._memo[node_id] = active
        return active

    def parent_active(self, node_id: str) -> bool:
        parent_id = self._index[node_id].parent_id
        return parent_id is None or self.is_active(parent_id)

    def _warn(self, code: str, message: str, node_id: str) -> None:
        logger.warning(message)
        self._warnings.append(DataIntegrityWarning(code=code, message=message, node_id=node_id))

    def _local(self, node_id: str) -> bool:
        if node_id in self._alternates:
            return self._alternates[node_id]
        cfg = self._graph.get_config(node_id)
        if cfg.type is FlowType.IF_NECESSARY:
            return node_id in self._selected
        if cfg.type is FlowType.DEPENDENT:
            target = cfg.dependent_on
            if target is None or target not in self._index:
                self._warn("dangling-dependent", f"dependent {node_id!r} lost its prerequisite {target!r}", node_id)
                return False
            if self._graph.flow_type(target) is not FlowType.IF_NECESSARY:
                self._warn("invalid-dependent", f"dependent {node_id!r} points at non-optional {target!r}", node_id)
                return False
            if self._strict and node_id not in self._selected:
                return False
            return self.is_active(target)
        return True


def _prune_tree(phases: Sequence[Phase], is_active: Callable[[str], bool]) -> tuple[Phase, ...]:
    resolved = []
    for phase in phases:
        if not is_active(phase.id):
            continue
        operations = []
        for op in phase.operations:
            if not is_active(op.id):
                continue
            steps = tuple(step for step in op.steps if is_active(step.id))
            operations.append(op.model_copy(update={"steps": steps}))
        resolved.append(phase.model_copy(update={"operations": tuple(operations)}))
    return tuple(resolved)


# ----------------------------------------------------------------------
# Post-processing
def _repair_step_links(
    phases: Sequence[Phase],
    known_ids: set[str],
    warnings: List[DataIntegrityWarning],
) -> tuple[Phase, ...]:
    kept_ids = {ref.node.id for ref in walk(phases)}

    def dangling(step_id: str, target: str, removed: bool) -> None:
        reason = "was removed from the plan" if removed else "does not exist"
        message = f"step {step_id!r} points at {target!r}, which {reason}"
        logger.warning(message)
        warnings.append(
            DataIntegrityWarning(code="dangling-step-reference", message=message, node_id=step_id)
        )

    def repair(step: WorkflowStep) -> WorkflowStep:
        update = {}
        for field in ("next_step_id", "alternate_step_id"):
            target = getattr(step, field)
            if target is not None and target not in kept_ids:
                dangling(step.id, target, removed=target in known_ids)
                update[field] = None
        point = step.decision_point
        if point is not None:
            options = []
            for option in point.options:
                fixes = {}
                for field in ("next_step_id", "alternate_step_id"):
                    target = getattr(option, field)
                    if target is not None and target not in known_ids:
                        dangling(step.id, target, removed=False)
                        fixes[field] = None
                options.append(option.model_copy(update=fixes) if fixes else option)
            if options != list(point.options):
                update["decision_point"] = point.model_copy(update={"options": tuple(options)})
        return step.model_copy(update=update) if update else step

    return _map_steps(phases, repair)


def _check_predecessors(
    phases: Sequence[Phase], graph: FlowGraph, warnings: List[DataIntegrityWarning]
) -> None:
    position = {ref.node.id: i for i, ref in enumerate(walk(phases))}
    for node_id, at in position.items():
        for predecessor in graph.get_config(node_id).predecessor_ids:
            if predecessor not in position:
                code, message = (
                    "missing-predecessor",
                    f"{node_id!r} requires {predecessor!r}, which is not in the plan",
                )
            elif position[predecessor] > at:
                code, message = (
                    "predecessor-out-of-order",
                    f"{node_id!r} is scheduled before its prerequisite {predecessor!r}",
                )
            else:
                continue
            logger.warning(message)
            warnings.append(DataIntegrityWarning(code=code, message=message, node_id=node_id))


def resolve(
    phases: Iterable[Phase],
    flow_graph: Optional[FlowGraph] = None,
    answers: Optional[Mapping[str, str]] = None,
    if_necessary_work: Optional[Mapping[str, Iterable[str]]] = None,
    mode: ResolutionMode = "initial-plan",
    now: Optional[datetime] = None,
    dependent_inclusion: DependentInclusion = "strict",
) -> ResolutionResult:
    """Resolve authored structure and user answers into a concrete plan.

    Args:
        phases: The project's phases; never mutated.
        flow_graph: Flow annotations keyed by node id.
        answers: Decision-step answers (step id -> option value) and alternate
            choices (group key or any member id -> chosen member id).
        if_necessary_work: Phase id -> selected optional node ids.
        mode: Session mode, stamped on applied decision points.
        now: Timestamp for the audit trail; defaults to the current UTC time.
        dependent_inclusion: ``strict`` keeps a dependent only when it was
            selected and its prerequisite is active; ``automatic`` pulls it in
            with its prerequisite.

    Returns:
        A :class:`ResolutionResult`. Validation problems make it not ``ok``
        and return the input unchanged.
    """
    phases = tuple(phases)
    graph = flow_graph or FlowGraph()
    answers = dict(answers or {})
    selected = {node_id for ids in (if_necessary_work or {}).values() for node_id in ids}
    stamp = now or datetime.now(timezone.utc)
    warnings: List[DataIntegrityWarning] = []

    index = _index(phases, warnings)
    for node_id in sorted(selected - set(index)):
        logger.debug(f"Ignoring optional selection of unknown node {node_id}")

    applied = _map_steps(phases, lambda step: _apply_decision(step, answers, mode, stamp))

    choices = _choose_alternates(index, graph, answers)
    alternates = {
        member: member == choice.chosen for choice in choices for member in choice.members
    }
    inclusion = _Inclusion(index, graph, alternates, selected, dependent_inclusion, warnings)

    # A group only needs an answer when its members could be in the plan.
    errors = [
        _group_issue(choice, index)
        for choice in choices
        if choice.problem is not None
        and any(inclusion.parent_active(m) for m in choice.members)
    ]
    if errors:
        logger.info(f"Resolution blocked by {len(errors)} validation issue(s)")
        return ResolutionResult(ok=False, phases=phases, errors=tuple(errors), warnings=tuple(warnings))

    resolved = _prune_tree(applied, inclusion.is_active)
    resolved = _repair_step_links(resolved, set(index), warnings)
    _check_predecessors(resolved, graph, warnings)

    logger.info(
        f"Resolved {len(index)} nodes into {sum(1 for _ in walk(resolved))} "
        f"in mode {mode} with {len(warnings)} warning(s)"
    )
    return ResolutionResult(ok=True, phases=resolved, warnings=tuple(warnings))
