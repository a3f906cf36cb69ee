"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import asyncpg

from ..constants import DEFAULT_STORE_TIMEOUT_SECONDS
from .models import GiftCode, Order, ProgressRecord
from .repository import WorkflowRepository


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow progress and entitlements using PostgreSQL.

    Connection setup and every statement are bounded by ``timeout`` through
    asyncpg, so a slow server surfaces as an error from the statement itself.
    """

    enforces_timeout = True

    def __init__(self, dsn: str, timeout: float = DEFAULT_STORE_TIMEOUT_SECONDS):
        self._dsn = dsn
        self._timeout = timeout
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(
            self._dsn, timeout=self._timeout, command_timeout=self._timeout
        )
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS progress (
                user_id TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                current_step INTEGER NOT NULL,
                completed_steps INTEGER[] NOT NULL,
                is_complete BOOLEAN NOT NULL,
                updated_at TIMESTAMPTZ,
                PRIMARY KEY (user_id, workflow_id)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_payloads (
                user_id TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                step_key TEXT NOT NULL,
                payload JSONB,
                updated_at TIMESTAMPTZ,
                PRIMARY KEY (user_id, workflow_id, step_key)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS orders (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                amount DOUBLE PRECISION NOT NULL,
                currency TEXT,
                status TEXT NOT NULL,
                created_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS gift_codes (
                id TEXT PRIMARY KEY,
                code TEXT NOT NULL,
                workflow_id TEXT NOT NULL,
                created_by TEXT,
                created_at TIMESTAMPTZ,
                expires_at TIMESTAMPTZ,
                used_by TEXT,
                used_at TIMESTAMPTZ,
                UNIQUE (code, workflow_id)
            )
            """
        )

    @staticmethod
    def _progress_from_row(row: asyncpg.Record) -> ProgressRecord:
        return ProgressRecord(
            user_id=row["user_id"],
            workflow_id=row["workflow_id"],
            current_step=row["current_step"],
            completed_steps=set(row["completed_steps"] or []),
            is_complete=row["is_complete"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _gift_from_row(row: asyncpg.Record) -> GiftCode:
        return GiftCode(
            id=row["id"],
            code=row["code"],
            workflow_id=row["workflow_id"],
            created_by=row["created_by"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            used_by=row["used_by"],
            used_at=row["used_at"],
        )

    # ------------------------------------------------------------------
    async def get_progress(self, user_id: str, workflow_id: str) -> ProgressRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM progress WHERE user_id = $1 AND workflow_id = $2",
                user_id,
                workflow_id,
            )
        finally:
            await conn.close()
        return self._progress_from_row(row) if row else None

    async def save_progress(self, record: ProgressRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO progress
                    (user_id, workflow_id, current_step, completed_steps, is_complete, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (user_id, workflow_id) DO UPDATE SET
                    current_step = EXCLUDED.current_step,
                    completed_steps = EXCLUDED.completed_steps,
                    is_complete = EXCLUDED.is_complete,
                    updated_at = EXCLUDED.updated_at
                """,
                record.user_id,
                record.workflow_id,
                record.current_step,
                sorted(record.completed_steps),
                record.is_complete,
                datetime.now(timezone.utc),
            )
        finally:
            await conn.close()

    async def delete_progress(self, user_id: str, workflow_id: str) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    "DELETE FROM step_payloads WHERE user_id = $1 AND workflow_id = $2",
                    user_id,
                    workflow_id,
                )
                await conn.execute(
                    "DELETE FROM progress WHERE user_id = $1 AND workflow_id = $2",
                    user_id,
                    workflow_id,
                )
        finally:
            await conn.close()

    async def list_progress(self) -> list[ProgressRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT * FROM progress ORDER BY user_id, workflow_id"
            )
        finally:
            await conn.close()
        return [self._progress_from_row(r) for r in rows]

    async def upsert_step_payload(
        self, user_id: str, workflow_id: str, step_key: str, payload: Any
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO step_payloads (user_id, workflow_id, step_key, payload, updated_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (user_id, workflow_id, step_key) DO UPDATE SET
                    payload = EXCLUDED.payload,
                    updated_at = EXCLUDED.updated_at
                """,
                user_id,
                workflow_id,
                step_key,
                json.dumps(payload),
                datetime.now(timezone.utc),
            )
        finally:
            await conn.close()

    async def get_step_payloads(self, user_id: str, workflow_id: str) -> dict[str, Any]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT step_key, payload FROM step_payloads WHERE user_id = $1 AND workflow_id = $2",
                user_id,
                workflow_id,
            )
        finally:
            await conn.close()
        return {r["step_key"]: json.loads(r["payload"]) for r in rows}

    async def add_order(self, order: Order) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO orders (id, user_id, workflow_id, amount, currency, status, created_at) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                order.id,
                order.user_id,
                order.workflow_id,
                order.amount,
                order.currency,
                order.status,
                order.created_at,
            )
        finally:
            await conn.close()

    async def find_paid_order(self, user_id: str, workflow_id: str) -> Order | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM orders WHERE user_id = $1 AND workflow_id = $2 AND status = 'paid' LIMIT 1",
                user_id,
                workflow_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return Order(
            id=row["id"],
            user_id=row["user_id"],
            workflow_id=row["workflow_id"],
            amount=row["amount"],
            currency=row["currency"],
            status=row["status"],
            created_at=row["created_at"],
        )

    async def add_gift_code(self, gift_code: GiftCode) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO gift_codes
                    (id, code, workflow_id, created_by, created_at, expires_at, used_by, used_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                """,
                gift_code.id,
                gift_code.code,
                gift_code.workflow_id,
                gift_code.created_by,
                gift_code.created_at,
                gift_code.expires_at,
                gift_code.used_by,
                gift_code.used_at,
            )
        finally:
            await conn.close()

    async def get_gift_code(self, code: str, workflow_id: str) -> GiftCode | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM gift_codes WHERE code = $1 AND workflow_id = $2",
                code,
                workflow_id,
            )
        finally:
            await conn.close()
        return self._gift_from_row(row) if row else None

    async def find_redeemed_gift_code(
        self, user_id: str, workflow_id: str
    ) -> GiftCode | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM gift_codes WHERE used_by = $1 AND workflow_id = $2 LIMIT 1",
                user_id,
                workflow_id,
            )
        finally:
            await conn.close()
        return self._gift_from_row(row) if row else None

    async def redeem_gift_code(
        self, gift_code_id: str, user_id: str, used_at: datetime
    ) -> bool:
        conn = await self._connect()
        try:
            status = await conn.execute(
                "UPDATE gift_codes SET used_by = $1, used_at = $2 WHERE id = $3 AND used_by IS NULL",
                user_id,
                used_at,
                gift_code_id,
            )
        finally:
            await conn.close()
        return status.endswith(" 1")
