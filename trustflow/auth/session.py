"""Explicit session context threaded through the engine."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel, Field


class AuthProvider(Protocol):
    """Source of the currently authenticated user."""

    def get_current_user(self) -> Optional[str]:
        """Return the user id, or ``None`` for an anonymous visitor."""


class StaticAuthProvider:
    """Auth provider returning a fixed user id (tests, CLI, trusted callers)."""

    def __init__(self, user_id: Optional[str] = None) -> None:
        self._user_id = user_id

    def get_current_user(self) -> Optional[str]:
        return self._user_id


class Session(BaseModel):
    """Carries the authenticated user for one workflow session."""

    user_id: Optional[str] = None
    claims: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_anonymous(self) -> bool:
        return not self.user_id

    @classmethod
    def from_provider(cls, provider: AuthProvider) -> "Session":
        user_id = provider.get_current_user()
        return cls(user_id=user_id, claims=dict(getattr(provider, "claims", None) or {}))
