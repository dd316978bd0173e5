"""Placeholder values available to step configuration templates.

Placeholders are referenced in templates as ``[#name#]``. Values come from
three sources, in strict priority order:

1. run identifiers: ``flow_run_uid`` and ``step_run_uid``
2. the step's last successful result: ``last_run_uid`` and
   ``last_run_<field>`` for every scalar field of the exported result
3. task parameters, namespaced as ``~parameter:<name>``

A lower-priority source never overwrites a name set by a higher one.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional

from .constants import LAST_RUN_PREFIX, PARAMETER_PREFIX
from .errors import PlaceholderError
from .results import StepResult

PLACEHOLDER_PATTERN = re.compile(r"\[#(.+?)#\]")


def resolve_placeholders(
    flow_run_uid: str,
    step_run_uid: str,
    last_result: Optional[StepResult] = None,
    parameters: Optional[Mapping[str, Any]] = None,
) -> Dict[str, str]:
    """Build the placeholder mapping for one step run."""
    placeholders: Dict[str, str] = {}

    def offer(name: str, value: Any) -> None:
        if name not in placeholders:
            placeholders[name] = _to_text(value)

    offer("flow_run_uid", flow_run_uid)
    offer("step_run_uid", step_run_uid)

    offer(f"{LAST_RUN_PREFIX}uid", last_result.step_run_uid if last_result else "")
    if last_result is not None:
        for field, value in last_result.export(force_all=True).items():
            if _is_scalar(value):
                offer(f"{LAST_RUN_PREFIX}{field}", value)

    for name, value in (parameters or {}).items():
        if _is_scalar(value):
            offer(f"{PARAMETER_PREFIX}{name}", value)

    return placeholders


def render_placeholders(
    template: str, placeholders: Mapping[str, Any], strict: bool = True
) -> str:
    """Replace every ``[#name#]`` token in ``template``.

    In strict mode an unknown name raises :class:`PlaceholderError`,
    otherwise it is replaced with an empty string.
    """

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in placeholders:
            return _to_text(placeholders[name])
        if strict:
            raise PlaceholderError(f'Placeholder "[#{name}#]" has no value')
        return ""

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def find_placeholders(template: str) -> list[str]:
    """Return the placeholder names referenced in ``template``."""
    return PLACEHOLDER_PATTERN.findall(template)


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)
