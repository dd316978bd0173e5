"""Run one or more flows and stream their progress."""

from __future__ import annotations

import logging
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Union,
)

from .config import EtlFlowConfig
from .constants import INDENT
from .contracts import FlowDefinition, RunContext, TaskContext, generate_run_uid
from .errors import ConfigurationError, StepExecutionError
from .flows.repository import FlowRepository
from .observers import StepObserver
from .persistence.repository import RunLogStore
from .results import StepResult
from .steps.builder import build_step_group
from .steps.group import StepGroup
from .steps.registry import REGISTRY, StepRegistry
from .stream import ProgressStream

logger = logging.getLogger(__name__)

TimeLimitHook = Callable[[int], None]


def split_list(value: Union[str, Sequence[str], None]) -> List[str]:
    """Accept a comma separated string or a list and return the stripped items."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [item.strip() for item in value if item and item.strip()]


class FlowRunner:
    """Resolves flows, builds their step groups and runs them in sequence."""

    def __init__(
        self,
        flows: FlowRepository,
        run_log: RunLogStore,
        registry: StepRegistry = REGISTRY,
        config: Optional[EtlFlowConfig] = None,
        observers: Sequence[StepObserver] = (),
        time_limit_hook: Optional[TimeLimitHook] = None,
    ) -> None:
        self.flows = flows
        self.run_log = run_log
        self.registry = registry
        self.config = config or EtlFlowConfig()
        self.observers = list(observers)
        self.time_limit_hook = time_limit_hook

    async def resolve_runs(
        self,
        aliases: Union[str, Sequence[str]],
        run_uids: Union[str, Sequence[str], None] = None,
    ) -> Dict[str, FlowDefinition]:
        """Map a flow run UID to every requested flow.

        UIDs are matched to the selectors by position and generated where
        none are given.

        Raises:
            ConfigurationError: If nothing is requested or the number of UIDs
                does not match the number of flows.
            FlowNotFoundError: If a selector matches no flow.
        """
        selectors = split_list(aliases)
        if not selectors:
            raise ConfigurationError(
                "No ETL flow to run: please provide at least one flow alias!"
            )
        uids = split_list(run_uids)
        if uids and len(uids) != len(selectors):
            raise ConfigurationError(
                f"Got {len(uids)} flow run UIDs for {len(selectors)} flows: "
                "please provide a run UID for every flow or none at all!"
            )
        if len(set(uids)) != len(uids):
            raise ConfigurationError("Flow run UIDs must be unique")

        runs: Dict[str, FlowDefinition] = {}
        for index, selector in enumerate(selectors):
            flow = await self.flows.get_flow(selector)
            runs[uids[index] if uids else generate_run_uid()] = flow
        return runs

    def build(self, flow: FlowDefinition) -> StepGroup:
        return build_step_group(
            flow,
            self.run_log,
            registry=self.registry,
            observers=self.observers,
            default_timeout=self.config.default_step_timeout,
        )

    def run(
        self,
        aliases: Union[str, Sequence[str]],
        run_uids: Union[str, Sequence[str], None] = None,
        task: Optional[TaskContext] = None,
    ) -> ProgressStream[Dict[str, Optional[StepResult]]]:
        """Run the requested flows one after another.

        The returned stream yields progress messages; its result maps each
        flow run UID to the result of the flow's root group.
        """
        return ProgressStream(self._run_all(aliases, run_uids, task or TaskContext()))

    async def _run_all(
        self,
        aliases: Union[str, Sequence[str]],
        run_uids: Union[str, Sequence[str], None],
        task: TaskContext,
    ) -> AsyncIterator[Any]:
        runs = await self.resolve_runs(aliases, run_uids)
        groups = {uid: self.build(flow) for uid, flow in runs.items()}
        results: Dict[str, Optional[StepResult]] = {}
        for flow_run_uid, group in groups.items():
            stream: ProgressStream[StepResult] = ProgressStream(
                self.run_flow(group, flow_run_uid, task)
            )
            async for message in stream:
                yield message
            results[flow_run_uid] = stream.result
        yield results

    async def run_flow(
        self, group: StepGroup, flow_run_uid: str, task: TaskContext
    ) -> AsyncIterator[Union[str, StepResult]]:
        """Run the root group of a single flow."""
        yield f'Running ETL flow "{group.name}" (run-UID {flow_run_uid}).\n'
        yield f"\n{INDENT}Execution plan:\n"
        for line in describe_plan(group):
            yield line

        timeout = group.get_timeout()
        if timeout > self.config.max_execution_time:
            yield f"\nIncreasing max execution time to {timeout} seconds."
            if self.time_limit_hook is not None:
                self.time_limit_hook(timeout)

        yield "\nStarting now...\n\n"
        logger.info(f"Starting ETL flow {group.name} with flow_run_uid={flow_run_uid}")

        context = RunContext(flow_run_uid=flow_run_uid, position=0, task=task)
        stream: ProgressStream[StepResult] = ProgressStream(group.run(context))
        try:
            async for message in stream:
                yield message
        except Exception as exc:
            error = StepExecutionError.wrap(exc, group.name)
            logger.error(
                f"ETL flow {group.name} stopped for flow_run_uid={flow_run_uid} "
                f"(log-ID {error.log_id}): {error.message}"
            )
            if error is exc:
                raise
            raise error from exc

        logger.info(f"Finished ETL flow {group.name} with flow_run_uid={flow_run_uid}")
        yield "\n✓ Finished successfully\n"
        if stream.result is not None:
            yield stream.result


def describe_plan(group: StepGroup, position: int = 0, depth: int = 2) -> List[str]:
    """Numbered outline of the steps of ``group`` as they will be run."""
    lines: List[str] = []
    for member in group.members:
        position += 1
        step = member.step
        suffix = " (disabled)" if step.is_disabled() else ""
        lines.append(f"{INDENT * depth}{position}. {step.name}{suffix}\n")
        if isinstance(step, StepGroup):
            lines.extend(describe_plan(step, position, depth + 1))
            position += step.count_steps()
    return lines
