"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from .models import GiftCode, Order, ProgressRecord
from .repository import WorkflowRepository

_Key = Tuple[str, str]


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store progress and entitlements in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._progress: Dict[_Key, ProgressRecord] = {}
        self._payloads: Dict[_Key, Dict[str, Any]] = {}
        self._orders: Dict[str, Order] = {}
        self._gift_codes: Dict[str, GiftCode] = {}

    # ------------------------------------------------------------------
    async def get_progress(self, user_id: str, workflow_id: str) -> ProgressRecord | None:
        record = self._progress.get((user_id, workflow_id))
        return record.model_copy(deep=True) if record else None

    async def save_progress(self, record: ProgressRecord) -> None:
        stored = record.model_copy(deep=True, update={"step_data": {}})
        stored.updated_at = datetime.now(timezone.utc)
        self._progress[(record.user_id, record.workflow_id)] = stored

    async def delete_progress(self, user_id: str, workflow_id: str) -> None:
        self._progress.pop((user_id, workflow_id), None)
        self._payloads.pop((user_id, workflow_id), None)

    async def list_progress(self) -> list[ProgressRecord]:
        return [r.model_copy(deep=True) for r in self._progress.values()]

    async def upsert_step_payload(
        self, user_id: str, workflow_id: str, step_key: str, payload: Any
    ) -> None:
        payloads = self._payloads.setdefault((user_id, workflow_id), {})
        payloads[step_key] = copy.deepcopy(payload)

    async def get_step_payloads(self, user_id: str, workflow_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._payloads.get((user_id, workflow_id), {}))

    # ------------------------------------------------------------------
    async def add_order(self, order: Order) -> None:
        self._orders[order.id] = order.model_copy(deep=True)

    async def find_paid_order(self, user_id: str, workflow_id: str) -> Order | None:
        for order in self._orders.values():
            if order.user_id == user_id and order.workflow_id == workflow_id and order.is_paid:
                return order.model_copy(deep=True)
        return None

    async def add_gift_code(self, gift_code: GiftCode) -> None:
        self._gift_codes[gift_code.id] = gift_code.model_copy(deep=True)

    async def get_gift_code(self, code: str, workflow_id: str) -> GiftCode | None:
        for gift in self._gift_codes.values():
            if gift.code == code and gift.workflow_id == workflow_id:
                return gift.model_copy(deep=True)
        return None

    async def find_redeemed_gift_code(
        self, user_id: str, workflow_id: str
    ) -> GiftCode | None:
        for gift in self._gift_codes.values():
            if gift.used_by == user_id and gift.workflow_id == workflow_id:
                return gift.model_copy(deep=True)
        return None

    async def redeem_gift_code(
        self, gift_code_id: str, user_id: str, used_at: datetime
    ) -> bool:
        gift = self._gift_codes.get(gift_code_id)
        if gift is None or gift.used_by is not None:
            return False
        gift.used_by = user_id
        gift.used_at = used_at
        return True
