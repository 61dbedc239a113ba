"""Flow annotations attached to project nodes by id."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FlowType(str, Enum):
    """How a node participates in branching or optional work.

    A node without a flow type (``None``) is standard work and always runs.
    """

    IF_NECESSARY = "if-necessary"
    ALTERNATE = "alternate"
    DEPENDENT = "dependent"


class FlowConfig(BaseModel):
    """Flow annotation for a single phase, operation or step."""

    type: Optional[FlowType] = None
    decision_prompt: Optional[str] = None
    alternate_ids: tuple[str, ...] = Field(default_factory=tuple)
    dependent_on: Optional[str] = None
    predecessor_ids: tuple[str, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @property
    def is_standard(self) -> bool:
        return self.type is None
