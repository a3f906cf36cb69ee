"""Step payload store: per-step key-value persistence."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .calls import effective_timeout, store_call
from .repository import WorkflowRepository

logger = logging.getLogger(__name__)


class StepPayloadStore:
    """Upserts and reads opaque step payloads keyed by ``(user, workflow, step)``.

    Writes replace the whole payload of one key and never touch other keys.
    Any backend failure surfaces as :class:`~trustflow.exceptions.PersistenceError`.
    """

    def __init__(
        self, repository: WorkflowRepository, timeout: Optional[float] = None
    ) -> None:
        self._repository = repository
        self._timeout = effective_timeout(repository, timeout)

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    async def write(
        self, user_id: str, workflow_id: str, step_key: str, payload: Any
    ) -> None:
        await store_call(
            self._repository.upsert_step_payload(user_id, workflow_id, step_key, payload),
            operation=f"write of step {step_key!r}",
            timeout=self._timeout,
        )
        logger.debug(
            f"Stored payload for step={step_key} user={user_id} workflow={workflow_id}"
        )

    async def read_all(self, user_id: str, workflow_id: str) -> dict[str, Any]:
        payloads = await store_call(
            self._repository.get_step_payloads(user_id, workflow_id),
            operation="read of step payloads",
            timeout=self._timeout,
        )
        return payloads or {}
