"""Base classes for flow steps."""

from __future__ import annotations

import abc
import json
from typing import Any, AsyncIterator, ClassVar, Dict, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..constants import DEFAULT_STEP_TIMEOUT, LAST_RUN_PREFIX
from ..contracts import RunContext
from ..errors import ConfigurationError
from ..results import StepResult, parse_result


class StepConfig(BaseModel):
    """Configuration shared by all step prototypes."""

    model_config = ConfigDict(extra="forbid")

    timeout: int = Field(
        default=DEFAULT_STEP_TIMEOUT,
        ge=0,
        description="Number of seconds the step is allowed to run at maximum",
    )


class RawStepConfig(StepConfig):
    """Fallback configuration accepting any additional keys."""

    model_config = ConfigDict(extra="allow")

    def get(self, name: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(name, default)

    def has(self, name: str) -> bool:
        return name in (self.model_extra or {})


class Step(abc.ABC):
    """A pluggable unit of work within a flow.

    ``run`` is an async generator: it yields human readable progress
    messages and, as its last item, the :class:`StepResult` of the run.
    """

    config_model: ClassVar[Type[StepConfig]] = RawStepConfig

    def __init__(
        self,
        name: str,
        config: Union[StepConfig, Mapping[str, Any], None] = None,
        from_object: Optional[str] = None,
        to_object: Optional[str] = None,
        disabled: bool = False,
    ) -> None:
        self._name = name
        self.config = self._build_config(name, config)
        self.to_object = to_object
        self.from_object = from_object or to_object
        self._disabled = disabled

    @classmethod
    def _build_config(
        cls, name: str, config: Union[StepConfig, Mapping[str, Any], None]
    ) -> StepConfig:
        if isinstance(config, cls.config_model):
            return config
        if isinstance(config, StepConfig):
            config = config.model_dump()
        try:
            return cls.config_model.model_validate(dict(config or {}))
        except ValidationError as exc:
            raise ConfigurationError(
                f'Invalid configuration for step "{name}": {exc}'
            ) from exc

    @property
    def name(self) -> str:
        return self._name

    @abc.abstractmethod
    def run(self, context: RunContext) -> AsyncIterator[Union[str, StepResult]]:
        """Execute the step, yielding progress messages and finally its result."""
        raise NotImplementedError

    def is_disabled(self) -> bool:
        return self._disabled

    def set_disabled(self, value: bool) -> "Step":
        self._disabled = bool(value)
        return self

    def is_incremental(self) -> bool:
        """Whether the step makes use of its last successful result."""
        return False

    def get_timeout(self) -> int:
        return self.config.timeout

    @classmethod
    def parse_result(
        cls, step_run_uid: str, serialized: Optional[str] = None
    ) -> StepResult:
        """Rebuild a result produced by this kind of step from the run log."""
        return parse_result(step_run_uid, serialized)

    def create_debug_info(self) -> Optional[Dict[str, Any]]:
        """Diagnostic snapshot stored with the run log, ``None`` if there is none."""
        return None

    def config_references_last_run(self) -> bool:
        """Return ``True`` if the configuration uses any ``[#last_run_...#]`` placeholder."""
        return f"[#{LAST_RUN_PREFIX}" in json.dumps(self.config.model_dump(), default=str)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
