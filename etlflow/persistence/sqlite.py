"""SQLite implementation of the run-log store."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import FlowRunSummary, RunLogRecord
from .repository import RunLogStore, summarize

COLUMNS = (
    "step_run_uid",
    "flow_uid",
    "flow_run_uid",
    "step_uid",
    "step_name",
    "position",
    "start_time",
    "end_time",
    "timeout_seconds",
    "incremental_flag",
    "incremental_after_run",
    "step_disabled_flag",
    "success_flag",
    "error_flag",
    "invalidated_flag",
    "output",
    "result_count",
    "result_data",
    "error_message",
    "error_log_id",
    "debug_info",
)

_SELECT = f"SELECT {', '.join(COLUMNS)} FROM step_run"


class SQLiteRunLogStore(RunLogStore):
    """Persist the run log using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_run (
                step_run_uid TEXT PRIMARY KEY,
                flow_uid TEXT,
                flow_run_uid TEXT NOT NULL,
                step_uid TEXT NOT NULL,
                step_name TEXT NOT NULL,
                position INTEGER NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                timeout_seconds INTEGER NOT NULL DEFAULT 0,
                incremental_flag INTEGER NOT NULL DEFAULT 0,
                incremental_after_run TEXT,
                step_disabled_flag INTEGER NOT NULL DEFAULT 0,
                success_flag INTEGER NOT NULL DEFAULT 0,
                error_flag INTEGER NOT NULL DEFAULT 0,
                invalidated_flag INTEGER NOT NULL DEFAULT 0,
                output TEXT NOT NULL DEFAULT '',
                result_count INTEGER,
                result_data TEXT,
                error_message TEXT,
                error_log_id TEXT,
                debug_info TEXT
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS step_run_step_idx ON step_run (step_uid, start_time)"
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS step_run_flow_run_idx ON step_run (flow_run_uid)"
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

    @staticmethod
    def _to_params(record: RunLogRecord) -> list[Any]:
        values = record.model_dump()
        params = []
        for column in COLUMNS:
            value = values[column]
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, bool):
                value = int(value)
            params.append(value)
        return params

    @staticmethod
    def _to_record(row: sqlite3.Row) -> RunLogRecord:
        data = {column: row[column] for column in COLUMNS}
        data["start_time"] = datetime.fromisoformat(row["start_time"])
        data["end_time"] = (
            datetime.fromisoformat(row["end_time"]) if row["end_time"] else None
        )
        return RunLogRecord(**data)

    # ------------------------------------------------------------------
    # Store API
    async def create(self, record: RunLogRecord) -> None:
        placeholders = ", ".join("?" for _ in COLUMNS)
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO step_run ({', '.join(COLUMNS)}) VALUES ({placeholders})",
            *self._to_params(record),
        )

    async def update(self, record: RunLogRecord) -> None:
        params = self._to_params(record)
        assignments = ", ".join(f"{column} = ?" for column in COLUMNS[1:])
        updated = await asyncio.to_thread(
            self._execute,
            f"UPDATE step_run SET {assignments} WHERE step_run_uid = ?",
            *params[1:],
            params[0],
        )
        if not updated:
            raise KeyError(f"Run log record {record.step_run_uid} not found")

    async def find_last_successful(self, step_uid: str) -> RunLogRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"""
            {_SELECT}
            WHERE step_uid = ? AND success_flag = 1 AND invalidated_flag = 0
            ORDER BY start_time DESC, rowid DESC
            LIMIT 1
            """,
            step_uid,
        )
        return self._to_record(row) if row else None

    async def get(self, step_run_uid: str) -> RunLogRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, f"{_SELECT} WHERE step_run_uid = ?", step_run_uid
        )
        return self._to_record(row) if row else None

    async def list_for_flow_run(self, flow_run_uid: str) -> list[RunLogRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"{_SELECT} WHERE flow_run_uid = ? ORDER BY position, rowid",
            flow_run_uid,
        )
        return [self._to_record(r) for r in rows]

    async def list_flow_runs(self) -> list[FlowRunSummary]:
        rows = await asyncio.to_thread(self._fetchall, f"{_SELECT} ORDER BY rowid")
        return summarize([self._to_record(r) for r in rows])

    async def invalidate(self, step_run_uid: str) -> bool:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE step_run SET invalidated_flag = 1 WHERE step_run_uid = ?",
            step_run_uid,
        )
        return bool(updated)

    def close(self) -> None:
        self._conn.close()
