"""Step implementation registry."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from ..access import AccessGate
from ..auth import Session
from ..contracts import StepImplementation
from ..exceptions import UnimplementedStepError
from ..registry.models import StepDefinition
from .forms import (
    FormScreen,
    FormStep,
    IdentityDetails,
    NDAAcceptance,
    OrdinationDetails,
    TrustNameSelection,
)
from .payment import PaymentScreen, PaymentStep

logger = logging.getLogger(__name__)


class StepImplementationRegistry:
    """Maps component identifiers to step implementations."""

    def __init__(
        self, implementations: Optional[Mapping[str, StepImplementation]] = None
    ) -> None:
        self._implementations: Dict[str, StepImplementation] = dict(implementations or {})

    def register(self, component: str, implementation: StepImplementation) -> None:
        self._implementations[component] = implementation

    def get(self, component: str) -> Optional[StepImplementation]:
        return self._implementations.get(component)

    def __contains__(self, component: object) -> bool:
        return component in self._implementations

    def missing(self, steps: Iterable[StepDefinition]) -> List[StepDefinition]:
        """Return the steps whose component has no implementation."""
        return [s for s in steps if s.component_name not in self._implementations]

    def validate(
        self, steps: Iterable[StepDefinition], strict: bool = False
    ) -> List[StepDefinition]:
        """Check ``steps`` at startup.

        Raises:
            UnimplementedStepError: In ``strict`` mode, for the first missing step.
        """
        missing = self.missing(steps)
        for step in missing:
            if strict:
                raise UnimplementedStepError(step.id, step.component_name)
            logger.warning(
                f"Step {step.id} has no implementation for {step.component_name}; "
                "users will be offered a skip"
            )
        return missing


def default_implementations(
    gate: Optional[AccessGate] = None,
    session: Optional[Session] = None,
    workflow_id: Optional[str] = None,
) -> StepImplementationRegistry:
    """Built-in implementations; the payment step needs a gate and session."""
    registry = StepImplementationRegistry(
        {
            "StepNDA": FormStep("Non-Disclosure Agreement", NDAAcceptance),
            "StepIdentity": FormStep("Identity Verification", IdentityDetails),
            "StepTrustName": FormStep("Trust Name Selection", TrustNameSelection),
            "StepOrdination": FormStep("Minister Ordination", OrdinationDetails),
        }
    )
    if gate is not None and session is not None and workflow_id:
        registry.register("StepPayment", PaymentStep(gate, session, workflow_id))
    return registry


__all__ = [
    "FormScreen",
    "FormStep",
    "IdentityDetails",
    "NDAAcceptance",
    "OrdinationDetails",
    "PaymentScreen",
    "PaymentStep",
    "StepImplementationRegistry",
    "TrustNameSelection",
    "default_implementations",
]
