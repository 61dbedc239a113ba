"""Keeps the canonical phases in their fixed relative order.

Kickoff, Planning and Ordering lead the project and Close Project always ends
it. Custom and incorporated phases keep their relative order and land between
Ordering and Close Project.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    CLOSE_PROJECT_PHASE,
    DUPLICATE_ID_SEPARATOR,
    KICKOFF_PHASE,
    ORDERING_PHASE,
    PLANNING_PHASE,
    STANDARD_PHASE_NAMES,
)
from .contracts import Phase
from .errors import DataIntegrityWarning

logger = logging.getLogger(__name__)

_LEADING_PHASES = (KICKOFF_PHASE, PLANNING_PHASE, ORDERING_PHASE)


class OrderingResult(BaseModel):
    """Ordered phases plus the repairs made along the way."""

    phases: tuple[Phase, ...] = Field(default_factory=tuple)
    warnings: tuple[DataIntegrityWarning, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)


def is_canonical(phase: Phase, name: Optional[str] = None) -> bool:
    """Return ``True`` for a local (not linked) phase with a canonical name."""
    if phase.is_linked:
        return False
    if name is None:
        return phase.name in STANDARD_PHASE_NAMES
    return phase.name == name


def _repair_duplicate_ids(
    phases: list[Phase],
) -> tuple[list[Phase], list[DataIntegrityWarning]]:
    taken = {phase.id for phase in phases}
    seen: set[str] = set()
    repaired: list[Phase] = []
    warnings: list[DataIntegrityWarning] = []
    for phase in phases:
        if phase.id in seen:
            suffix = 1
            while f"{phase.id}{DUPLICATE_ID_SEPARATOR}{suffix}" in taken:
                suffix += 1
            new_id = f"{phase.id}{DUPLICATE_ID_SEPARATOR}{suffix}"
            taken.add(new_id)
            logger.warning(
                f"Duplicate phase id {phase.id} on phase {phase.name!r}; reassigned to {new_id}"
            )
            warnings.append(
                DataIntegrityWarning(
                    code="duplicate-phase-id",
                    message=f"phase {phase.name!r} reused id {phase.id!r}; reassigned to {new_id!r}",
                    node_id=new_id,
                )
            )
            phase = phase.model_copy(update={"id": new_id})
        seen.add(phase.id)
        repaired.append(phase)
    return repaired, warnings


def order_phases(phases: Iterable[Phase]) -> OrderingResult:
    """Order ``phases`` canonically and report any repairs.

    Kickoff, Planning and Ordering are matched by their first occurrence and
    Close Project by its last, so a second pass over the output picks the same
    phases and leaves the order unchanged.
    """
    repaired, warnings = _repair_duplicate_ids(list(phases))

    leading: dict[str, Phase] = {}
    close_index: Optional[int] = None
    for index, phase in enumerate(repaired):
        if phase.name in _LEADING_PHASES and is_canonical(phase) and phase.name not in leading:
            leading[phase.name] = phase
        elif is_canonical(phase, CLOSE_PROJECT_PHASE):
            close_index = index

    chosen = {id(phase) for phase in leading.values()}
    close_phase = repaired[close_index] if close_index is not None else None
    if close_phase is not None:
        chosen.add(id(close_phase))

    others: list[Phase] = []
    for phase in repaired:
        if id(phase) in chosen:
            continue
        if is_canonical(phase):
            warnings.append(
                DataIntegrityWarning(
                    code="duplicate-standard-phase",
                    message=f"extra {phase.name!r} phase is treated as custom work",
                    node_id=phase.id,
                )
            )
        others.append(phase)

    ordered = [leading[name] for name in _LEADING_PHASES if name in leading]
    ordered.extend(others)
    if close_phase is not None:
        ordered.append(close_phase)
    return OrderingResult(phases=tuple(ordered), warnings=tuple(warnings))


def enforce_standard_ordering(phases: Iterable[Phase]) -> list[Phase]:
    """Return ``phases`` as ``[Kickoff, Planning, Ordering, *others, Close Project]``.

    Missing canonical phases are simply omitted. Pure and idempotent.
    """
    return list(order_phases(phases).phases)


def validate_standard_ordering(phases: Iterable[Phase]) -> list[str]:
    """Describe every canonical-order violation in ``phases``."""
    phases = list(phases)
    errors: list[str] = []

    def index_of(name: str) -> int:
        return next(
            (i for i, phase in enumerate(phases) if is_canonical(phase, name)), -1
        )

    positions = [(name, index_of(name)) for name in STANDARD_PHASE_NAMES]
    present = [(name, idx) for name, idx in positions if idx != -1]
    for i, (earlier, earlier_idx) in enumerate(present):
        for later, later_idx in present[i + 1 :]:
            if earlier_idx > later_idx:
                errors.append(f"{earlier} phase must come before {later} phase")

    close_idx = dict(positions)[CLOSE_PROJECT_PHASE]
    if close_idx != -1 and close_idx != len(phases) - 1:
        errors.append(f"{CLOSE_PROJECT_PHASE} must be the last phase")
    return errors


def expected_position(phase_name: str, total_phases: int) -> int:
    """Expected index of a canonical phase, or -1 for custom phases."""
    if phase_name == CLOSE_PROJECT_PHASE:
        return total_phases - 1
    if phase_name in _LEADING_PHASES:
        return _LEADING_PHASES.index(phase_name)
    return -1
