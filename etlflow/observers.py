"""Hooks notified around every step run of a step group."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from .contracts import RunContext
from .persistence.models import RunLogRecord

if TYPE_CHECKING:
    from .steps.base import Step

logger = logging.getLogger(__name__)


class StepObserver(Protocol):
    """Receives notifications from the step group that runs a step."""

    async def before_step(self, step: "Step", context: RunContext) -> None:
        """Called right before ``step.run`` is invoked."""

    async def after_step(self, step: "Step", record: RunLogRecord) -> None:
        """Called once the run-log record of the step has been closed."""


class LoggingObserver:
    """Write a log line before and after each step."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def before_step(self, step: "Step", context: RunContext) -> None:
        logger.log(
            self.level,
            f"Starting step {step.name} (position {context.position}) "
            f"for flow_run_uid={context.flow_run_uid}",
        )

    async def after_step(self, step: "Step", record: RunLogRecord) -> None:
        logger.log(
            self.level,
            f"Step {step.name} {record.status} for flow_run_uid={record.flow_run_uid} "
            f"step_run_uid={record.step_run_uid}",
        )


class RecordingObserver:
    """Keep every notification in memory, e.g. to inspect a run afterwards."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, str]] = []

    async def before_step(self, step: "Step", context: RunContext) -> None:
        self.events.append(("before", step.name, context.step_run_uid or ""))

    async def after_step(self, step: "Step", record: RunLogRecord) -> None:
        self.events.append(("after", step.name, record.status))
