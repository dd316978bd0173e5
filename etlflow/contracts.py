"""Core contracts shared by flows, steps and the runner."""

from __future__ import annotations

import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .results import StepResult


def generate_run_uid() -> str:
    """Return a new identifier for a flow run or step run."""
    return str(uuid.uuid4())


class StepDefinition(BaseModel):
    """Configuration of one step of a flow as loaded from the flow repository."""

    model_config = ConfigDict(frozen=True)

    uid: Optional[str] = None
    name: str
    prototype: str
    from_object: Optional[str] = None
    to_object: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    position: int = 0
    disabled: bool = False
    stop_flow_on_error: bool = False
    steps: List["StepDefinition"] = Field(
        default_factory=list, description="Child steps of a step group"
    )

    def ordered_steps(self) -> List["StepDefinition"]:
        """Child steps ordered by position, keeping declaration order on ties."""
        return sorted(self.steps, key=lambda s: s.position)


class FlowDefinition(BaseModel):
    """A named, ordered list of steps."""

    model_config = ConfigDict(frozen=True)

    uid: str
    alias: str
    name: str = ""
    version: Optional[str] = None
    steps: List[StepDefinition] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.alias

    def ordered_steps(self) -> List[StepDefinition]:
        return sorted(self.steps, key=lambda s: s.position)


class TaskContext(BaseModel):
    """The request that triggered a flow run."""

    parameters: Dict[str, Any] = Field(default_factory=dict)
    payload: Optional[str] = Field(
        default=None, description="Protocol specific document, e.g. an OpenAPI spec"
    )


class RunContext(BaseModel):
    """Everything a step gets to see when it runs.

    Created fresh for every step invocation and never persisted.
    """

    model_config = ConfigDict(frozen=True)

    flow_run_uid: str
    step_run_uid: Optional[str] = None
    position: int = 0
    previous_result: Optional[StepResult] = None
    last_result: Optional[StepResult] = None
    task: TaskContext = Field(default_factory=TaskContext)
    placeholders: Dict[str, str] = Field(default_factory=dict)
    before_execute_hook: Optional[Callable[[], Awaitable[None]]] = Field(
        default=None, exclude=True, repr=False
    )

    async def before_execute(self) -> None:
        """Tell the owning group that the step is about to do its actual work.

        Steps call this once their configuration is fully prepared so that a
        diagnostic snapshot can be captured for the run log.
        """
        if self.before_execute_hook is None:
            return
        await self.before_execute_hook()

    def get_placeholder(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.placeholders.get(name, default)
