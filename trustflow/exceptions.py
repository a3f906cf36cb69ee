"""Exception hierarchy for trustflow."""

from __future__ import annotations


class TrustflowError(Exception):
    """Base exception for all trustflow errors."""


class ConfigurationError(TrustflowError):
    """Workflow configuration is missing or invalid."""


class WorkflowNotFoundError(ConfigurationError):
    """No steps are configured for the requested workflow."""

    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id!r} has no configured steps")


class PersistenceError(TrustflowError):
    """The durable store failed to read or write."""


class UnimplementedStepError(TrustflowError):
    """A configured step has no registered implementation."""

    def __init__(self, step_id: str, component: str) -> None:
        self.step_id = step_id
        self.component = component
        super().__init__(
            f"Step {step_id!r} references unregistered component {component!r}"
        )


class GiftCodeError(TrustflowError):
    """A gift code could not be validated or redeemed."""
