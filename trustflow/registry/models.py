"""Pydantic models describing configured workflows and their steps."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class StepDefinition(BaseModel):
    """One step of a workflow as declared in configuration."""

    id: str
    display_name: str
    order: int
    required: bool = True
    description: Optional[str] = None
    component: Optional[str] = Field(
        default=None, description="Implementation identifier, defaults to ``id``"
    )
    icon: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("id")
    @classmethod
    def _ensure_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("step id must be a non-empty string")
        return v

    @property
    def component_name(self) -> str:
        """Identifier used to look up the step implementation."""
        return self.component or self.id


class WorkflowDefinition(BaseModel):
    """A named, ordered collection of steps."""

    id: str
    title: str = ""
    description: Optional[str] = None
    price: Optional[float] = None
    steps: List[StepDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(
                    f"duplicate step id {step.id!r} in workflow {self.id!r}"
                )
            seen.add(step.id)
        return self

    def ordered_steps(self) -> List[StepDefinition]:
        """Return steps sorted by ``order`` with ties broken by ``id``."""
        return sorted(self.steps, key=lambda s: (s.order, s.id))
