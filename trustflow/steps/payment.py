"""Payment step: re-checks the access gate before letting the user through."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..access import AccessGate
from ..auth import Session
from ..contracts import AccessStatus, AdvanceCallback, RetreatCallback

logger = logging.getLogger(__name__)


class PaymentScreen:
    """Rendered payment step.

    Payment itself happens outside trustflow (provider redirect or gift code
    redemption); :meth:`confirm` only verifies the resulting entitlement.
    """

    def __init__(
        self,
        gate: AccessGate,
        session: Session,
        workflow_id: str,
        on_advance: AdvanceCallback,
        on_retreat: Optional[RetreatCallback],
    ) -> None:
        self._gate = gate
        self._session = session
        self._workflow_id = workflow_id
        self._on_advance = on_advance
        self._on_retreat = on_retreat
        self.status: Optional[AccessStatus] = None

    async def confirm(self) -> bool:
        """Advance if the user now holds an entitlement for the workflow."""
        self.status = await self._gate.check_access(
            self._session.user_id, self._workflow_id
        )
        if not self.status.has_access:
            logger.info(
                f"Payment step blocked for user={self._session.user_id}: {self.status.status.value}"
            )
            return False
        await self._on_advance({"access_method": self.status.method.value})
        return True

    async def back(self) -> None:
        if self._on_retreat is not None:
            await self._on_retreat()


class PaymentStep:
    """Step implementation gating progress on a paid order or gift code."""

    def __init__(self, gate: AccessGate, session: Session, workflow_id: str) -> None:
        self._gate = gate
        self._session = session
        self._workflow_id = workflow_id

    def render(
        self,
        current_data: Any,
        on_advance: AdvanceCallback,
        on_retreat: Optional[RetreatCallback],
    ) -> PaymentScreen:
        return PaymentScreen(
            self._gate, self._session, self._workflow_id, on_advance, on_retreat
        )
