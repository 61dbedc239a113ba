"""Data models for persisted engine state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from ..contracts import ResolutionMode


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunSelections(BaseModel):
    """Long-lived user state of a project run: answers and optional work."""

    run_id: str
    answers: dict[str, str] = Field(default_factory=dict)
    if_necessary_work: dict[str, list[str]] = Field(default_factory=dict)
    mode: Optional[ResolutionMode] = None
    updated_at: datetime = Field(default_factory=_utcnow)
