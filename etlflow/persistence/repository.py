"""Repository abstraction for the run log."""

from __future__ import annotations

from typing import Protocol

from .models import FlowRunSummary, RunLogRecord


class RunLogStore(Protocol):
    """Protocol for run-log persistence backends.

    The run loop only ever uses ``create``, ``update`` and
    ``find_last_successful``; the remaining methods serve operators.
    """

    async def create(self, record: RunLogRecord) -> None:
        """Persist a new record at step start."""

    async def update(self, record: RunLogRecord) -> None:
        """Persist the final state of a record at step completion."""

    async def find_last_successful(self, step_uid: str) -> RunLogRecord | None:
        """Return the newest successful, non-invalidated run of ``step_uid``."""

    async def get(self, step_run_uid: str) -> RunLogRecord | None:
        """Retrieve a single record by its step run UID."""

    async def list_for_flow_run(self, flow_run_uid: str) -> list[RunLogRecord]:
        """Return all records of a flow run ordered by position."""

    async def list_flow_runs(self) -> list[FlowRunSummary]:
        """Return one summary per flow run, newest first."""

    async def invalidate(self, step_run_uid: str) -> bool:
        """Exclude a run from incremental lookups. Returns ``False`` if unknown."""


def summarize(records: list[RunLogRecord]) -> list[FlowRunSummary]:
    """Group ``records`` into flow run summaries, newest run first."""
    summaries: dict[str, FlowRunSummary] = {}
    for record in records:
        summary = summaries.get(record.flow_run_uid)
        if summary is None:
            summary = summaries[record.flow_run_uid] = FlowRunSummary(
                flow_run_uid=record.flow_run_uid, flow_uid=record.flow_uid
            )
        summary.steps += 1
        if record.error_flag:
            summary.errors += 1
        if summary.started_at is None or record.start_time < summary.started_at:
            summary.started_at = record.start_time
        if record.end_time is not None and (
            summary.finished_at is None or record.end_time > summary.finished_at
        ):
            summary.finished_at = record.end_time
    return sorted(
        summaries.values(),
        key=lambda s: s.started_at.timestamp() if s.started_at else 0.0,
        reverse=True,
    )
