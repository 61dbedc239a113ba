"""Error taxonomy for the workflow engine.

Authoring mistakes are raised as exceptions at write time. Problems found while
resolving a plan are collected as records instead, so the caller can render
every issue at once.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class HomeflowError(Exception):
    """Base class for all engine exceptions."""


class InvalidDependency(HomeflowError):
    """Raised when a dependency or prerequisite edge would break an invariant."""

    def __init__(self, message: str, node_id: str, target_id: Optional[str] = None):
        super().__init__(message)
        self.node_id = node_id
        self.target_id = target_id


class CyclicDependency(InvalidDependency):
    """Raised when a prerequisite edge would close a cycle."""


class InvalidAlternate(HomeflowError):
    """Raised for alternate edges that cannot exist, e.g. a node with itself."""


class PhaseNotIncorporable(HomeflowError):
    """Raised when a phase cannot be incorporated into another project."""


class ValidationIssue(BaseModel):
    """User-facing problem that blocks applying a resolution."""

    code: str
    message: str
    node_id: Optional[str] = None
    phase_id: Optional[str] = None
    operation_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class DataIntegrityWarning(BaseModel):
    """Inconsistency that was repaired (or skipped) during processing."""

    code: str
    message: str
    node_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)
