"""Turn flow definitions into runnable step groups."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..constants import STEP_GROUP_PROTOTYPE
from ..contracts import FlowDefinition, StepDefinition
from ..errors import ConfigurationError
from ..observers import StepObserver
from ..persistence.repository import RunLogStore
from .group import StepGroup
from .registry import REGISTRY, StepRegistry


def build_step_group(
    flow: FlowDefinition,
    run_log: RunLogStore,
    registry: StepRegistry = REGISTRY,
    observers: Sequence[StepObserver] = (),
    default_timeout: Optional[int] = None,
) -> StepGroup:
    """Build the root group of ``flow``.

    Raises:
        ConfigurationError: If the flow has no steps or a step cannot be built.
    """
    definitions = flow.ordered_steps()
    if not definitions:
        raise ConfigurationError(f'No steps found for flow "{flow.alias}"')

    root = StepGroup(
        flow.display_name, run_log=run_log, flow_uid=flow.uid, observers=observers
    )
    _populate(
        root, definitions, flow, [], run_log, registry, observers, default_timeout
    )
    return root


def _populate(
    group: StepGroup,
    definitions: List[StepDefinition],
    flow: FlowDefinition,
    path: List[str],
    run_log: RunLogStore,
    registry: StepRegistry,
    observers: Sequence[StepObserver],
    default_timeout: Optional[int],
) -> None:
    for definition in definitions:
        step_path = path + [definition.name]
        uid = definition.uid or "/".join([flow.uid] + step_path)
        if definition.prototype == STEP_GROUP_PROTOTYPE:
            step = StepGroup(
                definition.name,
                run_log=run_log,
                flow_uid=flow.uid,
                observers=observers,
                config=StepGroup._build_config(definition.name, definition.config),
                disabled=definition.disabled,
            )
            _populate(
                step,
                definition.ordered_steps(),
                flow,
                step_path,
                run_log,
                registry,
                observers,
                default_timeout,
            )
        else:
            if definition.steps:
                raise ConfigurationError(
                    f'Step "{definition.name}" has child steps but is not a step group'
                )
            step = registry.create(definition, default_timeout)
        try:
            group.add_step(
                step, uid=uid, stop_flow_on_error=definition.stop_flow_on_error
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
