"""Data models for persisted workflow progress and entitlements."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from pydantic import BaseModel, Field

from ..constants import ORDER_STATUS_PAID


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class ProgressRecord(BaseModel):
    """One user's traversal of one workflow.

    ``current_step`` is 1-based; ``len(steps) + 1`` means the workflow is
    complete. ``step_data`` is keyed by step key and never inspected here.
    """

    user_id: str
    workflow_id: str
    current_step: int = 1
    completed_steps: Set[int] = Field(default_factory=set)
    step_data: Dict[str, Any] = Field(default_factory=dict)
    is_complete: bool = False
    updated_at: Optional[datetime] = None

    def advance(self, total_steps: int) -> None:
        """Mark the current step completed and move the pointer forward."""
        if self.current_step > total_steps:
            return
        self.completed_steps.add(self.current_step)
        self.current_step += 1
        self.is_complete = self.current_step > total_steps

    def retreat(self) -> None:
        """Move the pointer back one step, never below the first."""
        self.current_step = max(1, self.current_step - 1)
        self.is_complete = False

    def clamp(self, total_steps: int) -> None:
        """Force the pointer into ``[1, total_steps + 1]``."""
        self.current_step = min(max(1, self.current_step), total_steps + 1)
        self.is_complete = self.current_step > total_steps


class Order(BaseModel):
    """A purchase of workflow access."""

    id: str = Field(default_factory=_new_id)
    user_id: str
    workflow_id: str
    amount: float = 0.0
    currency: Optional[str] = "usd"
    status: str = "pending"
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_paid(self) -> bool:
        return self.status == ORDER_STATUS_PAID


class GiftCode(BaseModel):
    """A single-use code granting access to one workflow."""

    id: str = Field(default_factory=_new_id)
    code: str
    workflow_id: str
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    expires_at: Optional[datetime] = None
    used_by: Optional[str] = None
    used_at: Optional[datetime] = None

    @property
    def is_used(self) -> bool:
        return self.used_by is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or _utcnow()
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at < now
