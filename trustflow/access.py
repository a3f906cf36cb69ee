"""Access gate and gift code redemption."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from .contracts import AccessMethod, AccessState, AccessStatus, GiftCodeValidation
from .exceptions import GiftCodeError, PersistenceError
from .persistence import GiftCode, WorkflowRepository, effective_timeout, store_call

logger = logging.getLogger(__name__)


class AccessGate:
    """Answers whether a user holds an entitlement for a workflow.

    A paid order is checked first, then a gift code redeemed by the user.
    Either one suffices. The gate never caches and has no side effects, so it
    is safe to call on every workflow entry and again inside payment steps.
    """

    def __init__(
        self, repository: WorkflowRepository, timeout: Optional[float] = None
    ) -> None:
        self._repository = repository
        self._timeout = effective_timeout(repository, timeout)

    async def has_access(self, user_id: Optional[str], workflow_id: str) -> bool:
        """Return ``True`` if ``user_id`` may enter ``workflow_id``.

        Anonymous users never have access. Store failures propagate as
        :class:`PersistenceError` rather than being read as "no access".
        """
        status = await self._resolve(user_id, workflow_id)
        return status.has_access

    async def check_access(
        self, user_id: Optional[str], workflow_id: str
    ) -> AccessStatus:
        """Like :meth:`has_access` but reports how access was granted.

        Store failures are reported as an ``error`` status instead of raising.
        """
        try:
            return await self._resolve(user_id, workflow_id)
        except PersistenceError as e:
            logger.error(
                f"Access check failed for user={user_id} workflow={workflow_id}: {e}"
            )
            return AccessStatus(status=AccessState.ERROR, error=str(e))

    async def _resolve(self, user_id: Optional[str], workflow_id: str) -> AccessStatus:
        if not user_id or not workflow_id:
            return AccessStatus(status=AccessState.NO_ACCESS)

        order = await store_call(
            self._repository.find_paid_order(user_id, workflow_id),
            operation="paid order lookup",
            timeout=self._timeout,
        )
        if order is not None:
            logger.debug(f"Paid order {order.id} grants {workflow_id} to {user_id}")
            return AccessStatus(
                status=AccessState.HAS_ACCESS,
                method=AccessMethod.PAYMENT,
                details=order.model_dump(mode="json"),
            )

        gift = await store_call(
            self._repository.find_redeemed_gift_code(user_id, workflow_id),
            operation="gift code lookup",
            timeout=self._timeout,
        )
        if gift is not None:
            logger.debug(f"Gift code {gift.id} grants {workflow_id} to {user_id}")
            return AccessStatus(
                status=AccessState.HAS_ACCESS,
                method=AccessMethod.GIFT_CODE,
                details=gift.model_dump(mode="json"),
            )

        return AccessStatus(status=AccessState.NO_ACCESS)


class GiftCodeService:
    """Creates, validates and redeems single-use gift codes."""

    def __init__(
        self, repository: WorkflowRepository, timeout: Optional[float] = None
    ) -> None:
        self._repository = repository
        self._timeout = effective_timeout(repository, timeout)

    async def create(
        self,
        code: str,
        workflow_id: str,
        created_by: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> GiftCode:
        if not code or not workflow_id:
            raise GiftCodeError("Code and workflow ID are required")
        gift = GiftCode(
            code=code,
            workflow_id=workflow_id,
            created_by=created_by,
            expires_at=expires_at,
        )
        await store_call(
            self._repository.add_gift_code(gift),
            operation="gift code insert",
            timeout=self._timeout,
        )
        logger.info(f"Created gift code {gift.id} for workflow={workflow_id}")
        return gift

    async def validate(self, code: str, workflow_id: str) -> GiftCodeValidation:
        """Check that ``code`` exists for the workflow, is unused and unexpired."""
        if not code or not workflow_id:
            return GiftCodeValidation(valid=False, error="Code and workflow ID are required")

        gift = await store_call(
            self._repository.get_gift_code(code, workflow_id),
            operation="gift code lookup",
            timeout=self._timeout,
        )
        if gift is None:
            return GiftCodeValidation(
                valid=False, error="Invalid gift code for this workflow"
            )
        if gift.is_used:
            return GiftCodeValidation(
                valid=False, error="This gift code has already been used"
            )
        if gift.is_expired():
            return GiftCodeValidation(valid=False, error="This gift code has expired")
        return GiftCodeValidation(valid=True, gift_code_id=gift.id)

    async def redeem(self, code: str, workflow_id: str, user_id: str) -> GiftCodeValidation:
        """Validate ``code`` and mark it used by ``user_id``.

        Raises:
            GiftCodeError: If the code is invalid or was redeemed concurrently.
        """
        if not user_id:
            raise GiftCodeError("A signed-in user is required to redeem a gift code")

        validation = await self.validate(code, workflow_id)
        if not validation.valid:
            raise GiftCodeError(validation.error)

        redeemed = await store_call(
            self._repository.redeem_gift_code(
                validation.gift_code_id, user_id, datetime.now(timezone.utc)
            ),
            operation="gift code redemption",
            timeout=self._timeout,
        )
        if not redeemed:
            raise GiftCodeError("This gift code has already been used")

        logger.info(
            f"Gift code {validation.gift_code_id} redeemed by user={user_id} for workflow={workflow_id}"
        )
        return validation
