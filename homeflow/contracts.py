"""Core data contracts for homeflow project templates and runs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterator, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DecisionStage = Literal["kickoff", "planning", "execution", "completion"]
ResolutionMode = Literal["initial-plan", "final-plan", "unplanned-work", "replan"]
RunStatus = Literal["not-started", "in-progress", "complete"]


class _Snapshot(BaseModel):
    """Immutable model that reads and writes the storage's camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class DecisionOption(_Snapshot):
    """One answer a user can pick at a decision point."""

    id: str
    label: str
    value: str
    next_step_id: Optional[str] = None
    alternate_step_id: Optional[str] = None


class DecisionPoint(_Snapshot):
    """Step-level question whose answer can redirect subsequent step flow."""

    id: Optional[str] = None
    question: str
    description: Optional[str] = None
    stage: DecisionStage = "planning"
    options: tuple[DecisionOption, ...] = Field(default_factory=tuple)
    allow_free_text: bool = False

    # Audit trail written by resolution. Never used for control flow.
    selected_value: Optional[str] = None
    applied_at: Optional[datetime] = None
    applied_in_stage: Optional[ResolutionMode] = None

    def find_option(self, value: str) -> Optional[DecisionOption]:
        """Return the option whose ``value`` matches, if any."""
        return next((opt for opt in self.options if opt.value == value), None)


class WorkflowStep(_Snapshot):
    """Finest-grained unit of work inside an operation."""

    id: str
    step: str
    description: str = ""
    is_decision_point: bool = False
    decision_point: Optional[DecisionPoint] = None
    next_step_id: Optional[str] = None
    alternate_step_id: Optional[str] = None
    condition: Optional[str] = None
    is_standard: bool = False

    @model_validator(mode="after")
    def _require_options(self) -> WorkflowStep:
        if (
            self.is_decision_point
            and self.decision_point is not None
            and not self.decision_point.options
        ):
            raise ValueError(f"decision step {self.id!r} must offer at least one option")
        return self


class Operation(_Snapshot):
    id: str
    name: str
    description: str = ""
    steps: tuple[WorkflowStep, ...] = Field(default_factory=tuple)
    is_standard: bool = False


class Phase(_Snapshot):
    """Coarsest level of a project; canonical or custom, local or linked."""

    id: str
    name: str
    description: str = ""
    operations: tuple[Operation, ...] = Field(default_factory=tuple)
    is_standard: bool = False

    # Provenance of a phase incorporated by reference from another project.
    is_linked: bool = False
    source_project_id: Optional[str] = None
    source_project_name: Optional[str] = None
    incorporated_revision: Optional[int] = None


class Project(_Snapshot):
    """Authored project template."""

    id: str
    name: str
    description: str = ""
    phases: tuple[Phase, ...] = Field(default_factory=tuple)
    revision_number: int = 0
    is_standard_template: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectRun(_Snapshot):
    """Runtime instance of a template, carrying its own copy of the phases."""

    id: str
    template_id: str
    name: str
    description: str = ""
    status: RunStatus = "not-started"
    phases: tuple[Phase, ...] = Field(default_factory=tuple)
    completed_steps: tuple[str, ...] = Field(default_factory=tuple)
    current_phase_id: Optional[str] = None
    current_operation_id: Optional[str] = None
    current_step_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_template(
        cls,
        project: Project,
        run_id: Optional[str] = None,
        name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "ProjectRun":
        """Snapshot ``project`` into a new run."""
        stamp = now or _utcnow()
        return cls(
            id=run_id or str(uuid.uuid4()),
            template_id=project.id,
            name=name or project.name,
            description=project.description,
            phases=project.model_copy(deep=True).phases,
            created_at=stamp,
            updated_at=stamp,
        )

    def with_phases(self, phases, now: Optional[datetime] = None) -> "ProjectRun":
        """Return a new run snapshot carrying ``phases``."""
        return self.model_copy(
            update={"phases": tuple(phases), "updated_at": now or _utcnow()}
        )


Node = Union[Phase, Operation, WorkflowStep]


class NodeRef(NamedTuple):
    """A node together with its enclosing phase and operation."""

    kind: Literal["phase", "operation", "step"]
    node: Node
    phase: Phase
    operation: Optional[Operation] = None

    @property
    def parent_id(self) -> Optional[str]:
        if self.kind == "phase":
            return None
        if self.kind == "operation":
            return self.phase.id
        return self.operation.id


def walk(phases) -> Iterator[NodeRef]:
    """Yield every phase, operation and step in document order."""
    for phase in phases:
        yield NodeRef("phase", phase, phase)
        for operation in phase.operations:
            yield NodeRef("operation", operation, phase, operation)
            for step in operation.steps:
                yield NodeRef("step", step, phase, operation)


def node_ids(phases) -> set[str]:
    """Return the ids of every node in ``phases``."""
    return {ref.node.id for ref in walk(phases)}
