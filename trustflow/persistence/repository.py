"""Repository abstraction for workflow progress persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from .models import GiftCode, Order, ProgressRecord


class WorkflowRepository(Protocol):
    """Protocol for durable store backends.

    Covers three record kinds: progress records (with their step payloads),
    orders and gift codes. Backends raise their own exceptions; callers wrap
    them in :class:`~trustflow.exceptions.PersistenceError`.
    """

    async def get_progress(self, user_id: str, workflow_id: str) -> ProgressRecord | None:
        """Return the pointer state for ``(user_id, workflow_id)`` without payloads."""

    async def save_progress(self, record: ProgressRecord) -> None:
        """Upsert pointer, completed set and completion flag."""

    async def delete_progress(self, user_id: str, workflow_id: str) -> None:
        """Remove the progress record and all its step payloads."""

    async def list_progress(self) -> list[ProgressRecord]:
        """Return all progress records without payloads."""

    async def upsert_step_payload(
        self, user_id: str, workflow_id: str, step_key: str, payload: Any
    ) -> None:
        """Insert or replace one step payload."""

    async def get_step_payloads(self, user_id: str, workflow_id: str) -> dict[str, Any]:
        """Return all step payloads keyed by step key."""

    async def add_order(self, order: Order) -> None:
        """Persist an order."""

    async def find_paid_order(self, user_id: str, workflow_id: str) -> Order | None:
        """Return a paid order for the user and workflow, if any."""

    async def add_gift_code(self, gift_code: GiftCode) -> None:
        """Persist a new gift code."""

    async def get_gift_code(self, code: str, workflow_id: str) -> GiftCode | None:
        """Look up a gift code by its text for a workflow."""

    async def find_redeemed_gift_code(
        self, user_id: str, workflow_id: str
    ) -> GiftCode | None:
        """Return a gift code redeemed by the user for the workflow, if any."""

    async def redeem_gift_code(
        self, gift_code_id: str, user_id: str, used_at: datetime
    ) -> bool:
        """Mark the code used by ``user_id`` if still unused; return success."""
