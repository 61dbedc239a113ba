"""Flow annotation model and the alternate/dependent graph store."""

from __future__ import annotations

from .models import FlowConfig, FlowType
from .store import FlowGraph

__all__ = ["FlowConfig", "FlowGraph", "FlowType"]
