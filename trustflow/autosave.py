"""Debounced autosave of in-step edits."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from typing import Any, Callable, Dict, Optional, Set

from .constants import DEFAULT_AUTOSAVE_DEBOUNCE_SECONDS
from .exceptions import PersistenceError
from .persistence import StepPayloadStore

logger = logging.getLogger(__name__)

SavedCallback = Callable[[str, Any], None]
ErrorCallback = Callable[[str, PersistenceError], None]


def _serialize(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, default=str)


class AutosaveCoordinator:
    """Coalesces rapid edits per step key into infrequent store writes.

    Each key has at most one armed timer. Re-scheduling a key cancels the
    armed timer and keeps only the newest payload. When a timer fires the
    payload is written unless it serialises identically to the last payload
    written (or primed) for that key. Writes for one key are serialised, so
    they reach the store in the order they were scheduled.

    Failures are logged and passed to ``on_error``; the last-written marker is
    left untouched so the next edit retries the write.
    """

    def __init__(
        self,
        store: StepPayloadStore,
        user_id: Optional[str],
        workflow_id: str,
        debounce_seconds: float = DEFAULT_AUTOSAVE_DEBOUNCE_SECONDS,
        on_saved: Optional[SavedCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        enabled: bool = True,
    ) -> None:
        self._store = store
        self._user_id = user_id
        self._workflow_id = workflow_id
        self._debounce = debounce_seconds
        self._on_saved = on_saved
        self._on_error = on_error
        self._enabled = enabled
        self._pending: Dict[str, Any] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._last_written: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def pending_keys(self) -> Set[str]:
        return set(self._pending)

    def _lock(self, step_key: str) -> asyncio.Lock:
        lock = self._locks.get(step_key)
        if lock is None:
            lock = self._locks[step_key] = asyncio.Lock()
        return lock

    def prime(self, step_key: str, payload: Any) -> None:
        """Record ``payload`` as already persisted for ``step_key``.

        Used for data that was loaded or written through another path, so a
        later identical schedule is a no-op and never reported as a save.
        """
        self._last_written[step_key] = _serialize(payload)

    def is_saved(self, step_key: str, payload: Any) -> bool:
        """Whether ``payload`` matches what was last persisted for ``step_key``."""
        return self._last_written.get(step_key) == _serialize(payload)

    def schedule(
self, step_key: str, payload: Any) -> None:
        """Arm (or re-arm) the debounce timer for ``step_key``."""
        if not self._enabled or not self._user_id:
            return

        armed = self._timers.pop(step_key, None)
        if armed is not None:
            armed.cancel()

        self._pending[step_key] = copy.deepcopy(payload)
        self._timers[step_key] = asyncio.create_task(self._fire_after(step_key))

    async def _fire_after(self, step_key: str) -> None:
        await asyncio.sleep(self._debounce)
        task = asyncio.current_task()
        # Past this point the timer can no longer be cancelled by schedule().
        if self._timers.get(step_key) is task:
            del self._timers[step_key]
        self._inflight.add(task)
        try:
            await self._save(step_key)
        finally:
            self._inflight.discard(task)

    async def _save(self, step_key: str) -> bool:
        async with self._lock(step_key):
            if step_key not in self._pending:
                return False
            payload = self._pending.pop(step_key)
            serialized = _serialize(payload)
            if self._last_written.get(step_key) == serialized:
                logger.debug(f"Skipping autosave of unchanged step={step_key}")
                return False

            try:
                await self._store.write(
                    self._user_id, self._workflow_id, step_key, payload
                )
            except PersistenceError as e:
                logger.warning(
                    f"Autosave failed for step={step_key} user={self._user_id}: {e}"
                )
                if self._on_error is not None:
                    self._on_error(step_key, e)
                return False

            self._last_written[step_key] = serialized
            logger.info(f"Auto-saved step={step_key} for user={self._user_id}")
            if self._on_saved is not None:
                self._on_saved(step_key, payload)
            return True

    async def cancel(self, step_key: str) -> None:
        """Drop any pending edit for ``step_key`` and wait out an in-flight write."""
        armed = self._timers.pop(step_key, None)
        if armed is not None:
            armed.cancel()
            await asyncio.gather(armed, return_exceptions=True)
        self._pending.pop(step_key, None)
        async with self._lock(step_key):
            pass

    async def flush(self) -> None:
        """Write every pending payload now instead of waiting for its timer."""
        armed = list(self._timers.values())
        self._timers.clear()
        for task in armed:
            task.cancel()
        if armed:
            await asyncio.gather(*armed, return_exceptions=True)
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        for step_key in list(self._pending):
            await self._save(step_key)

    async def close(self) -> None:
        """Flush pending edits and stop accepting new ones."""
        await self.flush()
        self._enabled = False
