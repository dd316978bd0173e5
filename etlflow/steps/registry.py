"""Registry mapping prototype keys to step implementations."""

from __future__ import annotations

import importlib
import logging
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from ..constants import STEP_GROUP_PROTOTYPE
from ..contracts import StepDefinition
from ..errors import ConfigurationError, UnknownPrototypeError
from .base import Step

logger = logging.getLogger(__name__)


class StepBuilder(Protocol):
    """Anything that creates a step from its definition, usually a ``Step`` subclass."""

    def __call__(
        self,
        name: str,
        config: dict,
        from_object: Optional[str] = None,
        to_object: Optional[str] = None,
    ) -> Step: ...


class StepRegistry:
    """Known step prototypes, keyed by the identifier used in flow definitions.

    Implementations are registered at startup; there is no lookup of
    arbitrary code paths at run time.
    """

    def __init__(self) -> None:
        self._builders: Dict[str, StepBuilder] = {}

    def register(
        self, key: str, builder: Optional[StepBuilder] = None
    ) -> Callable[[StepBuilder], StepBuilder] | StepBuilder:
        """Register ``builder`` under ``key``.

        Can be used as a decorator when ``builder`` is omitted.
        """
        if builder is None:

            def decorator(target: StepBuilder) -> StepBuilder:
                self.register(key, target)
                return target

            return decorator

        if not key or not key.strip():
            raise ValueError("prototype key must be a non-empty string")
        if key == STEP_GROUP_PROTOTYPE:
            raise ValueError(f'"{STEP_GROUP_PROTOTYPE}" is reserved for step groups')
        if key in self._builders:
            raise ValueError(f"Duplicate step prototype: {key}")
        self._builders[key] = builder
        return builder

    def unregister(self, key: str) -> None:
        self._builders.pop(key, None)

    def has(self, key: str) -> bool:
        return key == STEP_GROUP_PROTOTYPE or key in self._builders

    def keys(self) -> List[str]:
        return sorted(self._builders)

    def get(self, key: str) -> StepBuilder:
        try:
            return self._builders[key]
        except KeyError:
            raise UnknownPrototypeError(f'Unknown step prototype "{key}"') from None

    def create(
        self, definition: StepDefinition, default_timeout: Optional[int] = None
    ) -> Step:
        """Instantiate the step described by ``definition``."""
        builder = self.get(definition.prototype)
        config = dict(definition.config)
        if default_timeout is not None:
            config.setdefault("timeout", default_timeout)
        try:
            step = builder(
                name=definition.name,
                config=config,
                from_object=definition.from_object,
                to_object=definition.to_object,
            )
        except ConfigurationError:
            raise
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f'Cannot create step "{definition.name}" from prototype '
                f'"{definition.prototype}": {exc}'
            ) from exc
        step.set_disabled(definition.disabled)
        return step


def import_step_modules(modules: Iterable[str]) -> None:
    """Import modules that register their prototypes on import."""
    for module in modules:
        try:
            importlib.import_module(module)
        except ImportError as exc:
            raise ConfigurationError(f"Cannot import step module {module}: {exc}") from exc
        logger.debug(f"Imported step module {module}")


# Default registry used by the runner and the CLI
REGISTRY = StepRegistry()


def register_step(key: str) -> Callable[[StepBuilder], StepBuilder]:
    """Class decorator registering a step prototype in ``REGISTRY``."""
    return REGISTRY.register(key)  # type: ignore[return-value]
