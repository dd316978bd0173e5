"""Step contract, step groups and the prototype registry."""

from .base import RawStepConfig, Step, StepConfig
from .builder import build_step_group
from .group import GroupMember, StepGroup, StepGroupConfig
from .registry import REGISTRY, StepRegistry, import_step_modules, register_step

__all__ = [
    "Step",
    "StepConfig",
    "RawStepConfig",
    "StepGroup",
    "StepGroupConfig",
    "GroupMember",
    "StepRegistry",
    "REGISTRY",
    "register_step",
    "import_step_modules",
    "build_step_group",
]
