"""homeflow: workflow customization and decision engine for project templates."""

from .contracts import (
    DecisionOption,
    DecisionPoint,
    Operation,
    Phase,
    Project,
    ProjectRun,
    WorkflowStep,
)
from .customization import CustomizationState, incorporate_phase, incorporate_phase_with_flow
from .decisions import DecisionItem, DecisionSession, apply_answer, extract_decisions
from .engine import RunResolution, WorkflowEngine
from .errors import DataIntegrityWarning, InvalidDependency, ValidationIssue
from .flow import FlowConfig, FlowGraph, FlowType
from .ordering import enforce_standard_ordering
from .persistence import get_repository
from .resolution import ResolutionResult, resolve

__version__ = "0.1.0"
__all__ = [
    "CustomizationState",
    "DataIntegrityWarning",
    "DecisionItem",
    "DecisionOption",
    "DecisionPoint",
    "DecisionSession",
    "FlowConfig",
    "FlowGraph",
    "FlowType",
    "InvalidDependency",
    "Operation",
    "Phase",
    "Project",
    "ProjectRun",
    "ResolutionResult",
    "RunResolution",
    "ValidationIssue",
    "WorkflowEngine",
    "WorkflowStep",
    "apply_answer",
    "enforce_standard_ordering",
    "extract_decisions",
    "get_repository",
    "incorporate_phase",
    "incorporate_phase_with_flow",
    "resolve",
]
