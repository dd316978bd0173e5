"""Result objects produced by step runs."""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ResultParseError

PROCESSED_ROWS_KEY = "processed_rows_counter"
INCREMENT_VALUE_KEY = "increment_value"
RESERVED_KEYS = frozenset({PROCESSED_ROWS_KEY, INCREMENT_VALUE_KEY})


class StepResult(BaseModel):
    """What a single step run produced.

    ``data`` is an opaque, JSON-serializable mapping owned by the step. The
    result is frozen once constructed.
    """

    model_config = ConfigDict(frozen=True)

    step_run_uid: str
    processed_rows: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data")
    @classmethod
    def _reject_reserved_keys(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        clash = RESERVED_KEYS.intersection(value)
        if clash:
            raise ValueError(f"reserved result keys used in data: {sorted(clash)}")
        return value

    def count_processed_rows(self) -> Optional[int]:
        return self.processed_rows

    def export(self, force_all: bool = False) -> Dict[str, Any]:
        """Return the exported representation of the result.

        Optional properties are only included when set unless ``force_all``
        is given, in which case every property is present.
        """
        exported = dict(self.data)
        if force_all or self.processed_rows is not None:
            exported[PROCESSED_ROWS_KEY] = self.processed_rows
        return exported

    def serialize(self) -> str:
        return json.dumps(self.export(), default=str)

    def __str__(self) -> str:
        return self.serialize()

    @classmethod
    def parse(cls, step_run_uid: str, serialized: Optional[str] = None) -> "StepResult":
        """Rebuild a result of this class from its serialized form."""
        processed_rows, increment_value, data = _split_export(_decode(serialized))
        kwargs: Dict[str, Any] = {"processed_rows": processed_rows, "data": data}
        if issubclass(cls, IncrementalStepResult):
            kwargs["increment_value"] = increment_value
        elif increment_value is not None:
            raise ResultParseError(
                f"Cannot parse result of step run {step_run_uid}: unexpected increment value"
            )
        try:
            return cls(step_run_uid=step_run_uid, **kwargs)
        except ValidationError as exc:
            raise ResultParseError(
                f"Cannot parse result of step run {step_run_uid}: {exc}"
            ) from exc


class IncrementalStepResult(StepResult):
    """Result carrying a cursor/watermark for the next run of the same step."""

    increment_value: Optional[str] = None

    @field_validator("increment_value", mode="before")
    @classmethod
    def _normalize_increment_value(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, (bool, int, float)):
            return str(value)
        return value

    def get_increment_value(self) -> Optional[str]:
        return self.increment_value

    def export(self, force_all: bool = False) -> Dict[str, Any]:
        exported = super().export(force_all)
        if force_all or self.increment_value is not None:
            exported[INCREMENT_VALUE_KEY] = (
                self.increment_value if self.increment_value is not None else ""
            )
        return exported

    def serialize(self) -> str:
        # the key marks the payload as incremental even without a value
        exported = self.export()
        exported.setdefault(INCREMENT_VALUE_KEY, None)
        return json.dumps(exported, default=str)


def parse_result(step_run_uid: str, serialized: Optional[str] = None) -> StepResult:
    """Parse ``serialized`` into an incremental or plain result, whichever fits."""
    decoded = _decode(serialized)
    if INCREMENT_VALUE_KEY in decoded:
        return IncrementalStepResult.parse(step_run_uid, serialized)
    return StepResult.parse(step_run_uid, serialized)


def _decode(serialized: Optional[str]) -> Dict[str, Any]:
    if serialized is None or not serialized.strip():
        return {}
    try:
        decoded = json.loads(serialized)
    except json.JSONDecodeError as exc:
        raise ResultParseError(f"Invalid result payload: {exc}") from exc
    if not isinstance(decoded, dict):
        raise ResultParseError(
            f"Invalid result payload: expected a JSON object, got {type(decoded).__name__}"
        )
    return decoded


def _split_export(
    exported: Dict[str, Any],
) -> Tuple[Optional[int], Optional[str], Dict[str, Any]]:
    data = dict(exported)
    processed_rows = data.pop(PROCESSED_ROWS_KEY, None)
    increment_value = data.pop(INCREMENT_VALUE_KEY, None)
    if processed_rows is not None and (
        isinstance(processed_rows, bool) or not isinstance(processed_rows, int)
    ):
        raise ResultParseError(f"Invalid processed rows counter: {processed_rows!r}")
    return processed_rows, increment_value, data
