"""PostgreSQL implementation of the run-log store."""

from __future__ import annotations

from typing import Any

import asyncpg

from .models import FlowRunSummary, RunLogRecord
from .repository import RunLogStore, summarize
from .sqlite import COLUMNS

_SELECT = f"SELECT {', '.join(COLUMNS)} FROM step_run"


class PostgresRunLogStore(RunLogStore):
    """Persist the run log using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_run (
                seq BIGSERIAL,
                step_run_uid TEXT PRIMARY KEY,
                flow_uid TEXT,
                flow_run_uid TEXT NOT NULL,
                step_uid TEXT NOT NULL,
                step_name TEXT NOT NULL,
                position INTEGER NOT NULL,
                start_time TIMESTAMPTZ NOT NULL,
                end_time TIMESTAMPTZ,
                timeout_seconds INTEGER NOT NULL DEFAULT 0,
                incremental_flag BOOLEAN NOT NULL DEFAULT FALSE,
                incremental_after_run TEXT,
                step_disabled_flag BOOLEAN NOT NULL DEFAULT FALSE,
                success_flag BOOLEAN NOT NULL DEFAULT FALSE,
                error_flag BOOLEAN NOT NULL DEFAULT FALSE,
                invalidated_flag BOOLEAN NOT NULL DEFAULT FALSE,
                output TEXT NOT NULL DEFAULT '',
                result_count INTEGER,
                result_data TEXT,
                error_message TEXT,
                error_log_id TEXT,
                debug_info TEXT
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS step_run_step_idx ON step_run (step_uid, start_time)"
        )

    @staticmethod
    def _to_params(record: RunLogRecord) -> list[Any]:
        values = record.model_dump()
        return [values[column] for column in COLUMNS]

    @staticmethod
    def _to_record(row: asyncpg.Record) -> RunLogRecord:
        return RunLogRecord(**{column: row[column] for column in COLUMNS})

    # ------------------------------------------------------------------
    async def create(self, record: RunLogRecord) -> None:
        placeholders = ", ".join(f"${i}" for i in range(1, len(COLUMNS) + 1))
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO step_run ({', '.join(COLUMNS)}) VALUES ({placeholders})",
                *self._to_params(record),
            )
        finally:
            await conn.close()

    async def update(self, record: RunLogRecord) -> None:
        params = self._to_params(record)
        assignments = ", ".join(
            f"{column} = ${i}" for i, column in enumerate(COLUMNS[1:], start=1)
        )
        conn = await self._connect()
        try:
            status = await conn.execute(
                f"UPDATE step_run SET {assignments} WHERE step_run_uid = ${len(COLUMNS)}",
                *params[1:],
                params[0],
            )
        finally:
            await conn.close()
        if status.endswith(" 0"):
            raise KeyError(f"Run log record {record.step_run_uid} not found")

    async def find_last_successful(self, step_uid: str) -> RunLogRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"""
                {_SELECT}
                WHERE step_uid = $1 AND success_flag AND NOT invalidated_flag
                ORDER BY start_time DESC, seq DESC
                LIMIT 1
                """,
                step_uid,
            )
        finally:
            await conn.close()
        return self._to_record(row) if row else None

    async def get(self, step_run_uid: str) -> RunLogRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(f"{_SELECT} WHERE step_run_uid = $1", step_run_uid)
        finally:
            await conn.close()
        return self._to_record(row) if row else None

    async def list_for_flow_run(self, flow_run_uid: str) -> list[RunLogRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"{_SELECT} WHERE flow_run_uid = $1 ORDER BY position, seq",
                flow_run_uid,
            )
        finally:
            await conn.close()
        return [self._to_record(r) for r in rows]

    async def list_flow_runs(self) -> list[FlowRunSummary]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(f"{_SELECT} ORDER BY seq")
        finally:
            await conn.close()
        return summarize([self._to_record(r) for r in rows])

    async def invalidate(self, step_run_uid: str) -> bool:
        conn = await self._connect()
        try:
            status = await conn.execute(
                "UPDATE step_run SET invalidated_flag = TRUE WHERE step_run_uid = $1",
                step_run_uid,
            )
        finally:
            await conn.close()
        return not status.endswith(" 0")
