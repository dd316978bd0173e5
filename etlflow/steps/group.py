"""Step group: runs an ordered list of steps and keeps the run log."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence, Union

from ..constants import INDENT
from ..contracts import RunContext, generate_run_uid
from ..errors import StepExecutionError
from ..observers import StepObserver
from ..persistence.models import RunLogRecord, utcnow
from ..persistence.repository import RunLogStore
from ..placeholders import resolve_placeholders
from ..results import StepResult
from ..stream import ProgressStream
from .base import Step, StepConfig

logger = logging.getLogger(__name__)


class StepGroupConfig(StepConfig):
    """A group has no settings of its own; its timeout is the sum of its members."""


@dataclass
class GroupMember:
    """A step within a group together with its flow-level settings."""

    step: Step
    uid: str
    stop_flow_on_error: bool = False


class StepGroup(Step):
    """Runs multiple steps in sequence without any additional logic.

    Every member gets a run-log row when it is reached. A failing member
    flagged ``stop_flow_on_error`` ends the group by re-raising its error;
    any other failure is logged, reported in the progress stream and the
    group continues with the next member.

    If a nested group is configured to continue on failure, an error inside
    it skips its remaining members, but the enclosing group continues with
    the step after the nested group.
    """

    config_model = StepGroupConfig

    def __init__(
        self,
        name: str,
        run_log: RunLogStore,
        flow_uid: Optional[str] = None,
        observers: Sequence[StepObserver] = (),
        config: Optional[StepGroupConfig] = None,
        disabled: bool = False,
    ) -> None:
        super().__init__(name, config=config, disabled=disabled)
        self.flow_uid = flow_uid
        self._run_log = run_log
        self._observers: List[StepObserver] = list(observers)
        self._members: List[GroupMember] = []
        self._log = ""

    # ------------------------------------------------------------------
    # Composition
    def add_step(
        self, step: Step, uid: Optional[str] = None, stop_flow_on_error: bool = False
    ) -> "StepGroup":
        """Append ``step``; ``uid`` identifies it in the run log and defaults to its name."""
        uid = uid or step.name
        if any(m.uid == uid for m in self._members):
            raise ValueError(f'Step "{uid}" is already part of group "{self.name}"')
        self._members.append(GroupMember(step, uid, stop_flow_on_error))
        return self

    @property
    def members(self) -> List[GroupMember]:
        return list(self._members)

    @property
    def steps(self) -> List[Step]:
        return [m.step for m in self._members]

    def add_observer(self, observer: StepObserver) -> None:
        self._observers.append(observer)

    def count_steps(self) -> int:
        """Number of steps in this group including those of nested groups."""
        count = 0
        for member in self._members:
            count += 1
            if isinstance(member.step, StepGroup):
                count += member.step.count_steps()
        return count

    # ------------------------------------------------------------------
    # Step contract
    def is_incremental(self) -> bool:
        return all(m.step.is_incremental() for m in self._members)

    def get_timeout(self) -> int:
        return sum(m.step.get_timeout() for m in self._members)

    def create_debug_info(self) -> Optional[dict]:
        return {"output": self._log or "No output"}

    async def run(self, context: RunContext) -> AsyncIterator[Union[str, StepResult]]:
        position = context.position
        previous_result: Optional[StepResult] = None
        processed_rows: Optional[int] = None
        self._log = ""

        for member in self._members:
            position += 1
            step = member.step
            nested_count = step.count_steps() if isinstance(step, StepGroup) else 0

            last_record = await self._run_log.find_last_successful(member.uid)
            record = self._log_run_start(member, context, position, last_record)
            await self._run_log.create(record)

            if step.is_disabled():
                yield f"{INDENT}{position}. {step.name} - disabled\n"
                await self._notify_after(step, record)
                previous_result = None
                position += nested_count
                continue

            yield f"{INDENT}{position}. {step.name}:\n"
            output = ""
            step_result: Optional[StepResult] = None
            try:
                last_result = self._parse_last_result(step, last_record)
                step_context = self._build_context(
                    context, step, record, position, previous_result, last_result
                )
                await self._notify_before(step, step_context)

                stream: ProgressStream[StepResult] = ProgressStream(step.run(step_context))
                async for message in stream:
                    message = INDENT + INDENT + message
                    output += message
                    yield message
                self._log += output
                if isinstance(step, StepGroup):
                    output = f"Ran {nested_count} steps"

                step_result = self._bind_result(stream.result, record)
                await self._log_run_success(
                    record,
                    step,
                    output,
                    step_result or StepResult(step_run_uid=record.step_run_uid),
                )
                await self._notify_after(step, record)
            except Exception as exc:
                if isinstance(step, StepGroup):
                    output = "ERROR: one of the steps failed."
                error = StepExecutionError.wrap(exc, step.name)
                try:
                    await self._log_run_error(record, error, output)
                except Exception as log_exc:
                    logger.exception(
                        f"Could not save run log of step {step.name} "
                        f"(step_run_uid={record.step_run_uid})"
                    )
                    yield f"\n{INDENT}✗ Could not save run log: {log_exc}\n"
                await self._notify_after(step, record)

                if member.stop_flow_on_error:
                    raise error

                logger.warning(
                    f"Step {step.name} failed with log-ID {error.log_id}: {error.message}",
                    exc_info=error,
                )
                yield (
                    f"\n✗ ERROR: {error.message} "
                    f"(see log-ID {error.log_id} for details)\n"
                )
                step_result = None

            position += nested_count
            previous_result = step_result
            if step_result is not None and step_result.processed_rows is not None:
                processed_rows = (processed_rows or 0) + step_result.processed_rows

        yield StepResult(
            step_run_uid=context.step_run_uid or context.flow_run_uid,
            processed_rows=processed_rows,
            data={"steps": self.count_steps()},
        )

    # ------------------------------------------------------------------
    # Helpers
    def _build_context(
        self,
        parent: RunContext,
        step: Step,
        record: RunLogRecord,
        position: int,
        previous_result: Optional[StepResult],
        last_result: Optional[StepResult],
    ) -> RunContext:
        async def capture_debug_info() -> None:
            record.debug_info = self._debug_snapshot(step)

        return RunContext(
            flow_run_uid=parent.flow_run_uid,
            step_run_uid=record.step_run_uid,
            position=position,
            previous_result=previous_result,
            last_result=last_result,
            task=parent.task,
            placeholders=resolve_placeholders(
                parent.flow_run_uid,
                record.step_run_uid,
                last_result,
                parent.task.parameters,
            ),
            before_execute_hook=capture_debug_info,
        )

    @staticmethod
    def _bind_result(
        result: Optional[StepResult], record: RunLogRecord
    ) -> Optional[StepResult]:
        """Make sure a result belongs to the run-log row it is saved with."""
        if result is None or result.step_run_uid == record.step_run_uid:
            return result
        logger.debug(
            f"Rebinding result of step {record.step_name} from step run "
            f"{result.step_run_uid} to {record.step_run_uid}"
        )
        return result.model_copy(update={"step_run_uid": record.step_run_uid})

    @staticmethod
    def _parse_last_result(
        step: Step, last_record: Optional[RunLogRecord]
    ) -> Optional[StepResult]:
        if last_record is None:
            return None
        try:
            return step.parse_result(last_record.step_run_uid, last_record.result_data)
        except Exception as exc:
            raise StepExecutionError(
                f'Cannot read the last result of step "{step.name}" '
                f"(step run {last_record.step_run_uid}): {exc}",
                step_name=step.name,
            ) from exc

    def _log_run_start(
        self,
        member: GroupMember,
        context: RunContext,
        position: int,
        last_record: Optional[RunLogRecord],
    ) -> RunLogRecord:
        step = member.step
        now = utcnow()
        record = RunLogRecord(
            step_run_uid=generate_run_uid(),
            flow_uid=self.flow_uid,
            flow_run_uid=context.flow_run_uid,
            step_uid=member.uid,
            step_name=step.name,
            position=position,
            start_time=now,
            timeout_seconds=step.get_timeout(),
            incremental_flag=step.is_incremental(),
            incremental_after_run=last_record.step_run_uid if last_record else None,
        )
        if step.is_disabled():
            record.step_disabled_flag = True
            record.end_time = now
        return record

    async def _log_run_success(
        self, record: RunLogRecord, step: Step, output: str, result: StepResult
    ) -> None:
        record.end_time = utcnow()
        record.success_flag = True
        record.output = output
        record.result_count = result.count_processed_rows()
        record.result_data = result.serialize()
        if getattr(result, "increment_value", None) is not None:
            record.incremental_flag = True
        else:
            record.incremental_flag = False
            record.incremental_after_run = None
        record.debug_info = self._debug_snapshot(step) or record.debug_info
        await self._run_log.update(record)
        logger.info(
            f"Step {step.name} succeeded for flow_run_uid={record.flow_run_uid} "
            f"(processed rows: {record.result_count})"
        )

    async def _log_run_error(
        self, record: RunLogRecord, error: StepExecutionError, output: str
    ) -> None:
        record.end_time = utcnow()
        record.success_flag = False
        record.error_flag = True
        record.output = output
        record.error_message = error.message
        record.error_log_id = error.log_id
        await self._run_log.update(record)

    @staticmethod
    def _debug_snapshot(step: Step) -> Optional[str]:
        try:
            info = step.create_debug_info()
            return json.dumps(info, default=str) if info is not None else None
        except Exception:
            # Forget the snapshot if it cannot be produced
            logger.exception(f"Could not create debug info for step {step.name}")
            return None

    async def _notify_before(self, step: Step, context: RunContext) -> None:
        for observer in self._observers:
            await observer.before_step(step, context)

    async def _notify_after(self, step: Step, record: RunLogRecord) -> None:
        for observer in self._observers:
            try:
                await observer.after_step(step, record)
            except Exception:
                logger.exception(f"Observer {observer!r} failed after step {step.name}")
