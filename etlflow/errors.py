"""Exception types raised by etlflow."""

from __future__ import annotations

import uuid
from typing import Optional


def generate_log_id() -> str:
    """Return a short identifier used to correlate an error with the logs."""
    return uuid.uuid4().hex[:10].upper()


class EtlFlowError(Exception):
    """Base class for all etlflow errors."""


class ConfigurationError(EtlFlowError):
    """A flow or step definition is missing, empty or malformed."""


class FlowNotFoundError(ConfigurationError):
    """No flow matches the given selector."""


class UnknownPrototypeError(ConfigurationError):
    """A step definition references a prototype that is not registered."""


class PlaceholderError(EtlFlowError, KeyError):
    """A template references a placeholder that has no value."""

    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class ResultParseError(EtlFlowError, ValueError):
    """A serialized step result cannot be turned back into a result object."""


class StepExecutionError(EtlFlowError):
    """Failure raised by or during a step run.

    Every instance carries a ``log_id`` so the operator-facing progress
    stream, the run log and the application log can be correlated.
    """

    def __init__(
        self,
        message: str,
        log_id: Optional[str] = None,
        step_name: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.log_id = log_id or generate_log_id()
        self.step_name = step_name

    @classmethod
    def wrap(
        cls, exc: BaseException, step_name: Optional[str] = None
    ) -> "StepExecutionError":
        """Return ``exc`` unchanged if it already is a step error, wrap it otherwise."""
        if isinstance(exc, StepExecutionError):
            if exc.step_name is None:
                exc.step_name = step_name
            return exc
        wrapped = cls(str(exc) or exc.__class__.__name__, step_name=step_name)
        wrapped.__cause__ = exc
        return wrapped
