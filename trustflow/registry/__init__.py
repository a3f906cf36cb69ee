"""Step registry: resolves the ordered steps of a workflow."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from ..exceptions import ConfigurationError, WorkflowNotFoundError
from .builtin import BUILTIN_WORKFLOWS
from .models import StepDefinition, WorkflowDefinition

logger = logging.getLogger(__name__)


class StepRegistry:
    """Holds workflow definitions and resolves their step sequences.

    Resolution is a pure function of the registered definitions; callers get
    a fresh list on every call so reordering it has no effect on the registry.
    """

    def __init__(self, workflows: Optional[Iterable[WorkflowDefinition]] = None) -> None:
        self._workflows: Dict[str, WorkflowDefinition] = {}
        for workflow in workflows or ():
            self.register_workflow(workflow)

    def register_workflow(self, workflow: WorkflowDefinition) -> None:
        """Add ``workflow``, replacing any definition with the same id."""
        if not workflow.id:
            raise ConfigurationError("workflow id must be a non-empty string")
        if workflow.id in self._workflows:
            logger.info(f"Replacing workflow definition {workflow.id}")
        self._workflows[workflow.id] = workflow

    def get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    def list_workflows(self) -> List[WorkflowDefinition]:
        return list(self._workflows.values())

    def resolve_steps(self, workflow_id: str) -> List[StepDefinition]:
        """Return the steps of ``workflow_id`` in traversal order.

        Raises:
            WorkflowNotFoundError: If the workflow is unknown or has no steps.
        """
        workflow = self._workflows.get(workflow_id)
        if workflow is None or not workflow.steps:
            raise WorkflowNotFoundError(workflow_id)
        return workflow.ordered_steps()


def default_registry(extra: Optional[Iterable[WorkflowDefinition]] = None) -> StepRegistry:
    """Registry seeded with the built-in catalogue plus ``extra`` definitions."""
    registry = StepRegistry(BUILTIN_WORKFLOWS.values())
    for workflow in extra or ():
        registry.register_workflow(workflow)
    return registry


__all__ = [
    "BUILTIN_WORKFLOWS",
    "StepDefinition",
    "StepRegistry",
    "WorkflowDefinition",
    "default_registry",
]
