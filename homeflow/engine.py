"""Orchestrates extraction, gating, resolution and phase ordering."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from .config import HomeflowConfig, load_config
from .contracts import Phase, ProjectRun, ResolutionMode, node_ids
from .customization import CustomizationState, assemble_phases
from .decisions import DecisionItem, DecisionSession, extract_decisions
from .errors import DataIntegrityWarning
from .flow import FlowGraph
from .ordering import order_phases
from .resolution import ResolutionResult, resolve

logger = logging.getLogger(__name__)


class RunResolution(BaseModel):
    """Resolution result plus the new run snapshot when it succeeded."""

    result: ResolutionResult
    run: Optional[ProjectRun] = None

    model_config = ConfigDict(frozen=True)


class WorkflowEngine:
    """Entry point used by the host application.

    Holds configuration only; every call works on the values passed in and
    returns new ones.
    """

    def __init__(self, config: Optional[HomeflowConfig] = None) -> None:
        self.config = config or load_config()

    def decisions(
        self, phases: Iterable[Phase], answers: Optional[Mapping[str, str]] = None
    ) -> list[DecisionItem]:
        return extract_decisions(phases, answers)

    def open_session(
        self,
        phases: Iterable[Phase],
        mode: ResolutionMode,
        answers: Optional[Mapping[str, str]] = None,
    ) -> DecisionSession:
        return DecisionSession.open(phases, mode, answers)

    def resolve(
        self,
        phases: Iterable[Phase],
        flow_graph: Optional[FlowGraph] = None,
        answers: Optional[Mapping[str, str]] = None,
        if_necessary_work: Optional[Mapping[str, Iterable[str]]] = None,
        mode: ResolutionMode = "initial-plan",
        now: Optional[datetime] = None,
    ) -> ResolutionResult:
        """Gate, resolve and order ``phases`` for ``mode``.

        Warnings from auditing the flow graph, resolving and ordering are all
        returned together.
        """
        phases = tuple(phases)
        graph = flow_graph or FlowGraph()
        warnings: List[DataIntegrityWarning] = list(graph.audit())
        graph, pruned = graph.prune(node_ids(phases))
        warnings.extend(pruned)

        session = DecisionSession.open(phases, mode, answers)
        blocking = session.blocking_issues()
        if blocking:
            logger.info(f"{len(blocking)} open decision(s) block finalizing in mode {mode}")
            return ResolutionResult(
                ok=False, phases=phases, errors=tuple(blocking), warnings=tuple(warnings)
            )

        result = resolve(
            phases,
            graph,
            answers=answers,
            if_necessary_work=if_necessary_work,
            mode=mode,
            now=now,
            dependent_inclusion=self.config.engine.dependent_inclusion,
        )
        warnings.extend(result.warnings)
        if not result.ok:
            return result.model_copy(update={"warnings": tuple(warnings)})

        ordering = order_phases(result.phases)
        warnings.extend(ordering.warnings)
        return result.model_copy(
            update={"phases": ordering.phases, "warnings": tuple(warnings)}
        )

    def apply_to_run(
        self,
        run: ProjectRun,
        flow_graph: Optional[FlowGraph],
        state: CustomizationState,
        mode: ResolutionMode,
        now: Optional[datetime] = None,
    ) -> RunResolution:
        """Resolve a run's customization into a new run snapshot.

        Flow annotations carried in by incorporated phases are merged into
        ``flow_graph`` before resolving.
        """
        stamp = now or datetime.now(timezone.utc)
        phases = assemble_phases(run.phases, state)
        graph = (flow_graph or FlowGraph()).merge(state.flow_graph)
        result = self.resolve(
            phases,
            graph,
            answers=state.answers,
            if_necessary_work=state.if_necessary_work,
            mode=mode,
            now=stamp,
        )
        if not result.ok:
            return RunResolution(result=result)
        return RunResolution(result=result, run=run.with_phases(result.phases, now=stamp))
