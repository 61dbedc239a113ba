"""In-memory implementation of the flow repository."""

from __future__ import annotations

from typing import Dict

from ..flow import FlowGraph
from .models import RunSelections
from .repository import FlowRepository


class InMemoryFlowRepository(FlowRepository):
    """Store engine state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._graphs: Dict[str, FlowGraph] = {}
        self._selections: Dict[str, RunSelections] = {}

    async def save_flow_graph(self, project_id: str, graph: FlowGraph) -> None:
        self._graphs[project_id] = graph

    async def get_flow_graph(self, project_id: str) -> FlowGraph | None:
        return self._graphs.get(project_id)

    async def list_projects(self) -> list[str]:
        return list(self._graphs)

    async def save_selections(self, selections: RunSelections) -> None:
        self._selections[selections.run_id] = selections.model_copy(deep=True)

    async def get_selections(self, run_id: str) -> RunSelections | None:
        stored = self._selections.get(run_id)
        return stored.model_copy(deep=True) if stored else None
