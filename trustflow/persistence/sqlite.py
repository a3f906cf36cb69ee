"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..constants import DEFAULT_STORE_TIMEOUT_SECONDS
from .models import GiftCode, Order, ProgressRecord
from .repository import WorkflowRepository


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _format_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow progress and entitlements using SQLite.

    Calls run in a worker thread and cannot be abandoned half way, so the
    lock wait is bounded by ``timeout`` on the connection itself.
    """

    enforces_timeout = True

    def __init__(
        self, db_path: str | Path, timeout: float = DEFAULT_STORE_TIMEOUT_SECONDS
    ):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(
            self.db_path, timeout=timeout, check_same_thread=False
        )
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS progress (
                user_id TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                current_step INTEGER NOT NULL,
                completed_steps TEXT NOT NULL,
                is_complete INTEGER NOT NULL,
                updated_at TEXT,
                PRIMARY KEY (user_id, workflow_id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_payloads (
                user_id TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                step_key TEXT NOT NULL,
                payload TEXT,
                updated_at TEXT,
                PRIMARY KEY (user_id, workflow_id, step_key)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS orders (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                amount REAL NOT NULL,
                currency TEXT,
                status TEXT NOT NULL,
                created_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS gift_codes (
                id TEXT PRIMARY KEY,
                code TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                created_by TEXT,
                created_at TEXT,
                expires_at TEXT,
                used_by TEXT,
                used_at TEXT,
                UNIQUE (code, workflow_id)
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def _delete_progress(self, user_id: str, workflow_id: str) -> None:
        cur = self._conn.cursor()
        cur.execute(
            "DELETE FROM step_payloads WHERE user_id = ? AND workflow_id = ?",
            (user_id, workflow_id),
        )
        cur.execute(
            "DELETE FROM progress WHERE user_id = ? AND workflow_id = ?",
            (user_id, workflow_id),
        )
        self._conn.commit()

    @staticmethod
    def _progress_from_row(row: sqlite3.Row) -> ProgressRecord:
        return ProgressRecord(
            user_id=row["user_id"],
            workflow_id=row["workflow_id"],
            current_step=row["current_step"],
            completed_steps=set(json.loads(row["completed_steps"])),
            is_complete=bool(row["is_complete"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _gift_from_row(row: sqlite3.Row) -> GiftCode:
        return GiftCode(
            id=row["id"],
            code=row["code"],
            workflow_id=row["workflow_id"],
            created_by=row["created_by"],
            created_at=_parse_ts(row["created_at"]),
            expires_at=_parse_ts(row["expires_at"]),
            used_by=row["used_by"],
            used_at=_parse_ts(row["used_at"]),
        )

    # ------------------------------------------------------------------
    # Repository API
    async def get_progress(self, user_id: str, workflow_id: str) -> ProgressRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM progress WHERE user_id = ? AND workflow_id = ?",
            user_id,
            workflow_id,
        )
        return self._progress_from_row(row) if row else None

    async def save_progress(self, record: ProgressRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO progress
                (user_id, workflow_id, current_step, completed_steps, is_complete, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, workflow_id) DO UPDATE SET
                current_step = excluded.current_step,
                completed_steps = excluded.completed_steps,
                is_complete = excluded.is_complete,
                updated_at = excluded.updated_at
            """,
            record.user_id,
            record.workflow_id,
            record.current_step,
            json.dumps(sorted(record.completed_steps)),
            int(record.is_complete),
            datetime.now(timezone.utc).isoformat(),
        )

    async def delete_progress(self, user_id: str, workflow_id: str) -> None:
        await asyncio.to_thread(self._delete_progress, user_id, workflow_id)

    async def list_progress(self) -> list[ProgressRecord]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT * FROM progress ORDER BY user_id, workflow_id"
        )
        return [self._progress_from_row(r) for r in rows]

    async def upsert_step_payload(
        self, user_id: str, workflow_id: str, step_key: str, payload: Any
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO step_payloads (user_id, workflow_id, step_key, payload, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (user_id, workflow_id, step_key) DO UPDATE SET
                payload = excluded.payload,
                updated_at = excluded.updated_at
            """,
            user_id,
            workflow_id,
            step_key,
            json.dumps(payload),
            datetime.now(timezone.utc).isoformat(),
        )

    async def get_step_payloads(self, user_id: str, workflow_id: str) -> dict[str, Any]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT step_key, payload FROM step_payloads WHERE user_id = ? AND workflow_id = ?",
            user_id,
            workflow_id,
        )
        return {r["step_key"]: json.loads(r["payload"]) for r in rows}

    async def add_order(self, order: Order) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO orders (id, user_id, workflow_id, amount, currency, status, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            order.id,
            order.user_id,
            order.workflow_id,
            order.amount,
            order.currency,
            order.status,
            _format_ts(order.created_at),
        )

    async def find_paid_order(self, user_id: str, workflow_id: str) -> Order | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM orders WHERE user_id = ? AND workflow_id = ? AND status = 'paid' LIMIT 1",
            user_id,
            workflow_id,
        )
        if not row:
            return None
        return Order(
            id=row["id"],
            user_id=row["user_id"],
            workflow_id=row["workflow_id"],
            amount=row["amount"],
            currency=row["currency"],
            status=row["status"],
            created_at=_parse_ts(row["created_at"]),
        )

    async def add_gift_code(self, gift_code: GiftCode) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO gift_codes
                (id, code, workflow_id, created_by, created_at, expires_at, used_by, used_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            gift_code.id,
            gift_code.code,
            gift_code.workflow_id,
            gift_code.created_by,
            _format_ts(gift_code.created_at),
            _format_ts(gift_code.expires_at),
            gift_code.used_by,
            _format_ts(gift_code.used_at),
        )

    async def get_gift_code(self, code: str, workflow_id: str) -> GiftCode | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM gift_codes WHERE code = ? AND workflow_id = ?",
            code,
            workflow_id,
        )
        return self._gift_from_row(row) if row else None

    async def find_redeemed_gift_code(
        self, user_id: str, workflow_id: str
    ) -> GiftCode | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM gift_codes WHERE used_by = ? AND workflow_id = ? LIMIT 1",
            user_id,
            workflow_id,
        )
        return self._gift_from_row(row) if row else None

    async def redeem_gift_code(
        self, gift_code_id: str, user_id: str, used_at: datetime
    ) -> bool:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE gift_codes SET used_by = ?, used_at = ? WHERE id = ? AND used_by IS NULL",
            user_id,
            used_at.isoformat(),
            gift_code_id,
        )
        return updated == 1
