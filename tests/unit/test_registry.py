"""Tests for workflow definitions and step resolution."""

import pytest
from pydantic import ValidationError

from trustflow.exceptions import ConfigurationError, WorkflowNotFoundError
from trustflow.registry import (
    BUILTIN_WORKFLOWS,
    StepDefinition,
    StepRegistry,
    WorkflowDefinition,
    default_registry,
)


def _workflow(**kwargs) -> WorkflowDefinition:
    steps = kwargs.pop(
        "steps",
        [
            StepDefinition(id="c", display_name="C", order=2),
            StepDefinition(id="b", display_name="B", order=1),
            StepDefinition(id="a", display_name="A", order=1),
        ],
    )
    return WorkflowDefinition(id=kwargs.pop("id", "wf"), steps=steps, **kwargs)


def test_resolve_steps_orders_by_order_then_id() -> None:
    registry = StepRegistry([_workflow()])
    assert [s.id for s in registry.resolve_steps("wf")] == ["a", "b", "c"]


def test_resolve_steps_returns_fresh_list() -> None:
    registry = StepRegistry([_workflow()])
    steps = registry.resolve_steps("wf")
    steps.reverse()
    assert [s.id for s in registry.resolve_steps("wf")] == ["a", "b", "c"]


def test_unknown_or_empty_workflow_is_not_found() -> None:
    registry = StepRegistry([_workflow(id="empty", steps=[])])
    with pytest.raises(WorkflowNotFoundError):
        registry.resolve_steps("missing")
    with pytest.raises(WorkflowNotFoundError) as exc_info:
        registry.resolve_steps("empty")
    assert exc_info.value.workflow_id == "empty"
    assert isinstance(exc_info.value, ConfigurationError)


def test_duplicate_step_ids_rejected() -> None:
    with pytest.raises(ValidationError):
        _workflow(
            steps=[
                StepDefinition(id="a", display_name="A", order=0),
                StepDefinition(id="a", display_name="Again", order=1),
            ]
        )


def test_step_definition_defaults() -> None:
    step = StepDefinition(id="nda", display_name="NDA", order=1)
    assert step.required is True
    assert step.component_name == "nda"
    assert StepDefinition(id="x", display_name="X", order=0, component="StepX").component_name == "StepX"


def test_default_registry_contains_trust_bootcamp() -> None:
    registry = default_registry()
    steps = registry.resolve_steps("trust-bootcamp")
    assert len(steps) == 9
    assert steps[0].id == "payment"
    assert steps[-1].id == "document-delivery"
    assert "trust-bootcamp" in BUILTIN_WORKFLOWS


def test_default_registry_extra_workflows_replace_builtins() -> None:
    override = _workflow(id="trust-bootcamp", title="Short camp")
    registry = default_registry([override, _workflow(id="other")])
    assert registry.get_workflow("trust-bootcamp").title == "Short camp"
    assert len(registry.resolve_steps("trust-bootcamp")) == 3
    assert {w.id for w in registry.list_workflows()} == {"trust-bootcamp", "other"}
