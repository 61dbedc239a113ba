"""Decision extraction and rollup for resolution sessions."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .contracts import DecisionOption, Phase, ResolutionMode, walk
from .errors import ValidationIssue

logger = logging.getLogger(__name__)

DecisionStatus = Literal["pending", "answered", "requires-attention"]

# Modes that refuse to finalize while decisions are open.
BLOCKING_MODES: frozenset[str] = frozenset({"initial-plan"})


class DecisionItem(BaseModel):
    """Flattened, display-ready view of one decision step."""

    id: str
    question: str
    description: Optional[str] = None
    step_name: str
    phase_id: str
    phase_name: str
    operation_id: str
    operation_name: str
    stage: str
    options: tuple[DecisionOption, ...] = Field(default_factory=tuple)
    selected_value: Optional[str] = None
    status: DecisionStatus = "pending"

    model_config = ConfigDict(frozen=True)


def extract_decisions(
    phases: Iterable[Phase], answers: Optional[Mapping[str, str]] = None
) -> list[DecisionItem]:
    """Collect every decision point in document order.

    A value from ``answers`` (or one already applied to the decision point)
    that matches an option marks the item answered; a value that no longer
    matches any option marks it as requiring attention.
    """
    answers = answers or {}
    items: list[DecisionItem] = []
    for ref in walk(phases):
        if ref.kind != "step":
            continue
        step = ref.node
        point = step.decision_point
        if not step.is_decision_point or point is None:
            continue

        value = answers.get(step.id, point.selected_value)
        status: DecisionStatus = "pending"
        if value is not None:
            if point.find_option(value) is not None or point.allow_free_text:
                status = "answered"
            else:
                logger.debug(f"Stored answer {value!r} for {step.id} matches no option")
                status = "requires-attention"

        items.append(
            DecisionItem(
                id=step.id,
                question=point.question,
                description=point.description,
                step_name=step.step,
                phase_id=ref.phase.id,
                phase_name=ref.phase.name,
                operation_id=ref.operation.id,
                operation_name=ref.operation.name,
                stage=point.stage,
                options=point.options,
                selected_value=value,
                status=status,
            )
        )
    return items


def apply_answer(items: Iterable[DecisionItem], decision_id: str, value: str) -> list[DecisionItem]:
    """Return a new list with ``decision_id`` answered; unknown ids are ignored."""
    return [
        item.model_copy(update={"selected_value": value, "status": "answered"})
        if item.id == decision_id
        else item
        for item in items
    ]


def pending_count(items: Iterable[DecisionItem]) -> int:
    return sum(1 for item in items if item.status == "pending")


def answered_count(items: Iterable[DecisionItem]) -> int:
    return sum(1 for item in items if item.status == "answered")


def attention_count(items: Iterable[DecisionItem]) -> int:
    return sum(1 for item in items if item.status == "requires-attention")


class DecisionSession(BaseModel):
    """Decisions presented to the user during one resolution session."""

    mode: ResolutionMode
    items: List[DecisionItem] = Field(default_factory=list)
    answers: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def open(
        cls,
        phases: Iterable[Phase],
        mode: ResolutionMode,
        answers: Optional[Mapping[str, str]] = None,
    ) -> "DecisionSession":
        """Start a session over ``phases`` seeded with saved ``answers``."""
        items = extract_decisions(phases, answers)
        known = {item.id for item in items}
        seeded = {k: v for k, v in (answers or {}).items() if k in known}
        return cls(mode=mode, items=items, answers=seeded)

    def answer(self, decision_id: str, value: str) -> None:
        """Record ``value`` for ``decision_id``; stale ids are a no-op."""
        if not any(item.id == decision_id for item in self.items):
            logger.debug(f"Ignoring answer for unknown decision {decision_id}")
            return
        self.items = apply_answer(self.items, decision_id, value)
        self.answers[decision_id] = value

    @property
    def pending_count(self) -> int:
        return pending_count(self.items)

    @property
    def answered_count(self) -> int:
        return answered_count(self.items)

    def blocking_issues(self) -> list[ValidationIssue]:
        """Issues that prevent finalizing the session in its mode."""
        if self.mode not in BLOCKING_MODES:
            return []
        issues: list[ValidationIssue] = []
        for item in self.items:
            if item.status == "pending":
                code, message = "pending-decision", f"{item.question!r} has not been answered"
            elif item.status == "requires-attention":
                code, message = (
                    "decision-needs-attention",
                    f"answer {item.selected_value!r} to {item.question!r} is no longer an option",
                )
            else:
                continue
            issues.append(
                ValidationIssue(
                    code=code,
                    message=f"{message} ({item.phase_name} / {item.operation_name})",
                    node_id=item.id,
                    phase_id=item.phase_id,
                    operation_id=item.operation_id,
                )
            )
        return issues

    def can_finalize(self) -> bool:
        return not self.blocking_issues()
