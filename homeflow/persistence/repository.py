"""Repository abstraction for engine state persistence."""

from __future__ import annotations

from typing import Protocol

from ..flow import FlowGraph
from .models import RunSelections


class FlowRepository(Protocol):
    """Protocol for flow graph and run selection storage backends."""

    async def save_flow_graph(self, project_id: str, graph: FlowGraph) -> None:
        """Persist the flow annotations of a project, replacing earlier ones."""

    async def get_flow_graph(self, project_id: str) -> FlowGraph | None:
        """Retrieve the flow annotations of a project."""

    async def list_projects(self) -> list[str]:
        """Return ids of projects with stored flow annotations."""

    async def save_selections(self, selections: RunSelections) -> None:
        """Persist the answers and optional work of a project run."""

    async def get_selections(self, run_id: str) -> RunSelections | None:
        """Retrieve the selections of a project run."""
