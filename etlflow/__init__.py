"""etlflow: incremental ETL flows made of pluggable steps."""

from .config import EtlFlowConfig, load_config
from .contracts import FlowDefinition, RunContext, StepDefinition, TaskContext
from .errors import (
    ConfigurationError,
    EtlFlowError,
    FlowNotFoundError,
    StepExecutionError,
)
from .flows import get_flow_repository
from .persistence import get_run_log_store
from .results import IncrementalStepResult, StepResult
from .runner import FlowRunner
from .steps import REGISTRY, Step, StepGroup, register_step
from .stream import ProgressStream

__version__ = "0.1.0"
__all__ = [
    "ConfigurationError",
    "EtlFlowConfig",
    "EtlFlowError",
    "FlowDefinition",
    "FlowNotFoundError",
    "FlowRunner",
    "IncrementalStepResult",
    "ProgressStream",
    "REGISTRY",
    "RunContext",
    "Step",
    "StepDefinition",
    "StepExecutionError",
    "StepGroup",
    "StepResult",
    "TaskContext",
    "get_flow_repository",
    "get_run_log_store",
    "load_config",
    "register_step",
]
