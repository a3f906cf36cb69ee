"""Bounded, error-wrapped calls into a repository backend."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Optional, TypeVar

from ..exceptions import PersistenceError

T = TypeVar("T")


def effective_timeout(repository: Any, timeout: Optional[float]) -> Optional[float]:
    """Timeout to apply around calls into ``repository``.

    Backends flagged with ``enforces_timeout`` bound their own operations.
    Cancelling the awaiting coroutine would not stop a write already handed to
    their worker thread or server, so no outer timeout is applied to them.
    """
    if getattr(repository, "enforces_timeout", False):
        return None
    return timeout


async def store_call(
    awaitable: Awaitable[T], *, operation: str, timeout: Optional[float] = None
) -> T:
    """Await ``awaitable`` and normalise every failure to ``PersistenceError``.

    A ``timeout`` of ``None`` waits indefinitely.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except PersistenceError:
        raise
    except asyncio.TimeoutError as exc:
        raise PersistenceError(f"{operation} timed out after {timeout}s") from exc
    except Exception as exc:
        raise PersistenceError(f"{operation} failed: {exc}") from exc
