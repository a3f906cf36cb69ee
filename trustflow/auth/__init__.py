"""Authentication providers and the session context."""

from __future__ import annotations

from .session import AuthProvider, Session, StaticAuthProvider
from .tokens import JwtAuthProvider

__all__ = ["AuthProvider", "JwtAuthProvider", "Session", "StaticAuthProvider"]
