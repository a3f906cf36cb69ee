"""Tests for the built-in step implementations."""

import pytest

from trustflow.access import AccessGate
from trustflow.auth import Session
from trustflow.exceptions import UnimplementedStepError
from trustflow.persistence import InMemoryWorkflowRepository, Order
from trustflow.registry import default_registry
from trustflow.steps import (
    FormStep,
    NDAAcceptance,
    PaymentStep,
    StepImplementationRegistry,
    TrustNameSelection,
    default_implementations,
)


class Recorder:
    def __init__(self):
        self.advanced = []
        self.retreated = 0

    async def advance(self, data=None):
        self.advanced.append(data)

    async def retreat(self):
        self.retreated += 1


@pytest.mark.asyncio
async def test_form_rejects_invalid_input_without_advancing():
    recorder = Recorder()
    screen = FormStep("NDA", NDAAcceptance).render(None, recorder.advance, None)

    assert await screen.submit({"accepted": False, "signature": ""}) is False
    assert set(screen.errors) == {"accepted", "signature"}
    assert recorder.advanced == []
    assert screen.can_go_back is False


@pytest.mark.asyncio
async def test_form_advances_with_cleaned_payload():
    recorder = Recorder()
    screen = FormStep("Trust name", TrustNameSelection).render(
        {"trust_base_name": "  Oak Hill "}, recorder.advance, recorder.retreat
    )

    assert await screen.submit() is True
    assert recorder.advanced == [
        {
            "trust_base_name": "Oak Hill",
            "full_trust_name": "Oak Hill Trust",
            "trust_type": "ecclesiastic-revocable-living",
        }
    ]
    await screen.back()
    assert recorder.retreated == 1


@pytest.mark.asyncio
async def test_identity_form_parses_dates():
    recorder = Recorder()
    implementations = default_implementations()
    screen = implementations.get("StepIdentity").render({}, recorder.advance, None)

    ok = await screen.submit(
        {
            "full_name": "Ada Lovelace",
            "date_of_birth": "1815-12-10",
            "address": "12 St James's Square",
            "city": "London",
            "state": "LDN",
            "zip_code": "SW1Y",
        }
    )
    assert ok
    assert recorder.advanced[0]["date_of_birth"] == "1815-12-10"


@pytest.mark.asyncio
async def test_payment_step_waits_for_entitlement():
    repo = InMemoryWorkflowRepository()
    recorder = Recorder()
    step = PaymentStep(AccessGate(repo), Session(user_id="u1"), "wf")
    screen = step.render(None, recorder.advance, None)

    assert await screen.confirm() is False
    assert recorder.advanced == []

    await repo.add_order(Order(user_id="u1", workflow_id="wf", status="paid"))
    assert await screen.confirm() is True
    assert recorder.advanced == [{"access_method": "payment"}]


def test_default_implementations_cover_form_steps():
    steps = default_registry().resolve_steps("trust-bootcamp")

    without_gate = default_implementations()
    assert "StepPayment" not in without_gate

    implementations = default_implementations(
        AccessGate(InMemoryWorkflowRepository()), Session(user_id="u1"), "trust-bootcamp"
    )
    missing = [s.id for s in implementations.missing(steps)]
    assert missing == [
        "gmail-setup",
        "verification-tools",
        "document-generation",
        "document-delivery",
    ]


def test_validate_strict_raises():
    steps = default_registry().resolve_steps("trust-bootcamp")
    registry = StepImplementationRegistry()
    assert len(registry.validate(steps)) == 9
    with pytest.raises(UnimplementedStepError):
        registry.validate(steps, strict=True)
