"""In-memory implementation of the run-log store."""

from __future__ import annotations

from typing import Dict

from .models import FlowRunSummary, RunLogRecord
from .repository import RunLogStore, summarize


class InMemoryRunLogStore(RunLogStore):
    """Keep the run log in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._records: Dict[str, RunLogRecord] = {}
        self._sequence: Dict[str, int] = {}

    # ------------------------------------------------------------------
    async def create(self, record: RunLogRecord) -> None:
        if record.step_run_uid in self._records:
            raise ValueError(f"Run log record {record.step_run_uid} already exists")
        self._sequence[record.step_run_uid] = len(self._sequence)
        self._records[record.step_run_uid] = record.model_copy(deep=True)

    async def update(self, record: RunLogRecord) -> None:
        if record.step_run_uid not in self._records:
            raise KeyError(f"Run log record {record.step_run_uid} not found")
        self._records[record.step_run_uid] = record.model_copy(deep=True)

    async def find_last_successful(self, step_uid: str) -> RunLogRecord | None:
        candidates = [
            r
            for r in self._records.values()
            if r.step_uid == step_uid and r.success_flag and not r.invalidated_flag
        ]
        if not candidates:
            return None
        newest = max(
            candidates,
            key=lambda r: (r.start_time, self._sequence[r.step_run_uid]),
        )
        return newest.model_copy(deep=True)

    async def get(self, step_run_uid: str) -> RunLogRecord | None:
        record = self._records.get(step_run_uid)
        return record.model_copy(deep=True) if record else None

    async def list_for_flow_run(self, flow_run_uid: str) -> list[RunLogRecord]:
        records = [r for r in self._records.values() if r.flow_run_uid == flow_run_uid]
        records.sort(key=lambda r: (r.position, self._sequence[r.step_run_uid]))
        return [r.model_copy(deep=True) for r in records]

    async def list_flow_runs(self) -> list[FlowRunSummary]:
        return summarize(list(self._records.values()))

    async def invalidate(self, step_run_uid: str) -> bool:
        record = self._records.get(step_run_uid)
        if record is None:
            return False
        record.invalidated_flag = True
        return True
