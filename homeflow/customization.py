"""User customization of a project run: extra phases and workflow order."""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .constants import CLOSE_PROJECT_PHASE
from .contracts import Phase, Project
from .errors import PhaseNotIncorporable
from .flow import FlowGraph
from .ordering import is_canonical

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]


def _new_id() -> str:
    return str(uuid.uuid4())


class CustomizationState(BaseModel):
    """Everything a user has chosen for one project run.

    ``base_phases`` are the run's own phases; ``flow_graph`` holds the flow
    annotations that came along with incorporated phases.
    """

    base_phases: tuple[Phase, ...] = Field(default_factory=tuple)
    answers: Dict[str, str] = Field(default_factory=dict)
    if_necessary_work: Dict[str, List[str]] = Field(default_factory=dict)
    custom_planned_work: tuple[Phase, ...] = Field(default_factory=tuple)
    custom_unplanned_work: tuple[Phase, ...] = Field(default_factory=tuple)
    workflow_order: tuple[str, ...] = Field(default_factory=tuple)
    flow_graph: FlowGraph = Field(default_factory=FlowGraph)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def for_phases(cls, phases: Iterable[Phase], **kwargs) -> "CustomizationState":
        """Start a state over ``phases`` whose workflow order follows them."""
        phases = tuple(phases)
        return cls(
            base_phases=phases,
            workflow_order=tuple(phase.id for phase in phases),
            **kwargs,
        )

    def with_answer(self, decision_id: str, value: str) -> "CustomizationState":
        return self.model_copy(update={"answers": {**self.answers, decision_id: value}})

    def with_optional_work(self, phase_id: str, node_ids: Iterable[str]) -> "CustomizationState":
        work = {**self.if_necessary_work, phase_id: list(dict.fromkeys(node_ids))}
        return self.model_copy(update={"if_necessary_work": work})


def _incorporate(
    source: Project, phase_id: str, id_factory: Optional[IdFactory]
) -> tuple[Phase, Dict[str, str]]:
    new_id = id_factory or _new_id
    phase = next((p for p in source.phases if p.id == phase_id), None)
    if phase is None:
        raise PhaseNotIncorporable(f"Project {source.name!r} has no phase {phase_id!r}")
    if phase.is_standard or is_canonical(phase):
        raise PhaseNotIncorporable(
            f"Standard phase {phase.name!r} cannot be incorporated from {source.name!r}"
        )

    remap: Dict[str, str] = {}
    for op in phase.operations:
        remap[op.id] = new_id()
        for step in op.steps:
            remap[step.id] = new_id()

    def relink(target: Optional[str]) -> Optional[str]:
        return remap.get(target, target) if target is not None else None

    operations = []
    for op in phase.operations:
        steps = []
        for step in op.steps:
            update = {
                "id": remap[step.id],
                "next_step_id": relink(step.next_step_id),
                "alternate_step_id": relink(step.alternate_step_id),
            }
            if step.decision_point is not None:
                options = tuple(
                    option.model_copy(
                        update={
                            "next_step_id": relink(option.next_step_id),
                            "alternate_step_id": relink(option.alternate_step_id),
                        }
                    )
                    for option in step.decision_point.options
                )
                update["decision_point"] = step.decision_point.model_copy(
                    update={"options": options}
                )
            steps.append(step.model_copy(update=update))
        operations.append(op.model_copy(update={"id": remap[op.id], "steps": tuple(steps)}))

    remap[phase.id] = new_id()
    logger.info(f"Incorporated phase {phase.name!r} from project {source.id}")
    linked = phase.model_copy(
        update={
            "id": remap[phase.id],
            "operations": tuple(operations),
            "is_linked": True,
            "is_standard": False,
            "source_project_id": source.id,
            "source_project_name": source.name,
            "incorporated_revision": source.revision_number,
        }
    )
    return linked, remap


def incorporate_phase(
    source: Project,
    phase_id: str,
    id_factory: Optional[IdFactory] = None,
) -> Phase:
    """Copy ``phase_id`` from ``source`` as a linked phase with fresh ids.

    Step pointers that stay inside the phase are remapped to the new ids.
    Canonical phases belong to every project and cannot be incorporated.
    """
    linked, _ = _incorporate(source, phase_id, id_factory)
    return linked


def incorporate_phase_with_flow(
    source: Project,
    phase_id: str,
    source_graph: Optional[FlowGraph],
    id_factory: Optional[IdFactory] = None,
) -> tuple[Phase, FlowGraph]:
    """Like :func:`incorporate_phase`, also carrying over flow annotations.

    Returns the linked phase and the annotations of ``source_graph`` that
    belong to it, re-keyed to the phase's new ids.
    """
    linked, remap = _incorporate(source, phase_id, id_factory)
    return linked, (source_graph or FlowGraph()).rekey(remap)


def _insert(order: Sequence[str], ids: Sequence[str], index: int) -> tuple[str, ...]:
    fresh = [i for i in ids if i not in order]
    return tuple(order[:index]) + tuple(fresh) + tuple(order[index:])


def _known_phases(base: Iterable[Phase], state: CustomizationState) -> Dict[str, Phase]:
    phases: Dict[str, Phase] = {}
    for phase in (*base, *state.custom_planned_work, *state.custom_unplanned_work):
        phases.setdefault(phase.id, phase)
    return phases


def add_planned_work(
    state: CustomizationState,
    phases: Sequence[Phase],
    insert_after: Optional[str] = None,
    flow_graph: Optional[FlowGraph] = None,
) -> CustomizationState:
    """Add phases incorporated from other projects.

    They go right after ``insert_after`` when given, otherwise just before the
    Close Project phase, otherwise at the end. ``flow_graph`` holds their flow
    annotations, as returned by :func:`incorporate_phase_with_flow`.
    """
    order = list(state.workflow_order)
    if insert_after is not None and insert_after in order:
        index = order.index(insert_after) + 1
    else:
        known = _known_phases(state.base_phases, state)
        close = next(
            (
                i
                for i, pid in enumerate(order)
                if pid in known and is_canonical(known[pid], CLOSE_PROJECT_PHASE)
            ),
            None,
        )
        index = close if close is not None else len(order)
    return state.model_copy(
        update={
            "custom_planned_work": state.custom_planned_work + tuple(phases),
            "flow_graph": state.flow_graph.merge(flow_graph or FlowGraph()),
            "workflow_order": _insert(order, [p.id for p in phases], index),
        }
    )


def add_unplanned_work(
    state: CustomizationState,
    phase: Phase,
    insert_after: Optional[str] = None,
) -> CustomizationState:
    """Add a phase the user created; after ``insert_after`` or at the end."""
    order = list(state.workflow_order)
    if insert_after is not None and insert_after in order:
        index = order.index(insert_after) + 1
    else:
        index = len(order)
    return state.model_copy(
        update={
            "custom_unplanned_work": state.custom_unplanned_work + (phase,),
            "workflow_order": _insert(order, [phase.id], index),
        }
    )


def reorder(state: CustomizationState, order: Iterable[str]) -> CustomizationState:
    return state.model_copy(update={"workflow_order": tuple(dict.fromkeys(order))})


def assemble_phases(base_phases: Iterable[Phase], state: CustomizationState) -> list[Phase]:
    """Merge custom work into ``base_phases`` and apply the workflow order.

    A phase id is never added twice; phases missing from the order keep their
    relative position at the end.
    """
    known = _known_phases(base_phases, state)
    ordered = [known[pid] for pid in state.workflow_order if pid in known]
    placed = {phase.id for phase in ordered}
    ordered.extend(phase for pid, phase in known.items() if pid not in placed)
    return ordered
