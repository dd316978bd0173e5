"""Data models for persisted step runs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunLogRecord(BaseModel):
    """One row of the run log: a single execution of a single step."""

    step_run_uid: str
    flow_uid: Optional[str] = None
    flow_run_uid: str
    step_uid: str
    step_name: str = ""
    position: int = 0
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    timeout_seconds: int = 0
    incremental_flag: bool = False
    incremental_after_run: Optional[str] = None
    step_disabled_flag: bool = False
    success_flag: bool = False
    error_flag: bool = False
    invalidated_flag: bool = False
    output: str = ""
    result_count: Optional[int] = None
    result_data: Optional[str] = None
    error_message: Optional[str] = None
    error_log_id: Optional[str] = None
    debug_info: Optional[str] = None

    @property
    def status(self) -> str:
        if self.step_disabled_flag:
            return "disabled"
        if self.error_flag:
            return "failed"
        if self.success_flag:
            return "succeeded"
        if self.end_time is None:
            return "running"
        return "finished"


class FlowRunSummary(BaseModel):
    """Aggregated view of the run-log rows belonging to one flow run."""

    flow_run_uid: str
    flow_uid: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    steps: int = 0
    errors: int = 0
