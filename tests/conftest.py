"""Shared fixtures: small step prototypes and helpers to run flows in tests."""

from typing import Any, Dict, List, Optional

import pytest

import etlflow.persistence as persistence
from etlflow.contracts import FlowDefinition, StepDefinition
from etlflow.persistence import InMemoryRunLogStore
from etlflow.results import IncrementalStepResult, StepResult
from etlflow.steps import REGISTRY, Step, StepConfig, StepRegistry


class EchoConfig(StepConfig):
    rows: Optional[int] = None
    messages: List[str] = []
    data: Dict[str, Any] = {}


class EchoStep(Step):
    """Prints its configured messages and reports ``rows`` processed rows."""

    config_model = EchoConfig

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.contexts = []

    async def run(self, context):
        self.contexts.append(context)
        await context.before_execute()
        for message in self.config.messages:
            yield message + "\n"
        yield StepResult(
            step_run_uid=context.step_run_uid,
            processed_rows=self.config.rows,
            data=self.config.data,
        )

    def create_debug_info(self):
        return {"rows": self.config.rows}


class FailConfig(StepConfig):
    message: str = "boom"


class FailStep(Step):
    """Reports progress, then raises."""

    config_model = FailConfig

    async def run(self, context):
        yield "working\n"
        raise RuntimeError(self.config.message)


class CounterConfig(StepConfig):
    start: int = 1


class CounterStep(Step):
    """Incremental step counting up from the increment of its last run."""

    config_model = CounterConfig

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.seen = []

    def is_incremental(self) -> bool:
        return True

    async def run(self, context):
        last = context.get_placeholder("last_run_increment_value")
        self.seen.append(last)
        value = int(last) + 1 if last else self.config.start
        yield f"counting from {value}\n"
        yield IncrementalStepResult(
            step_run_uid=context.step_run_uid, processed_rows=1, increment_value=value
        )


STEP_CLASSES = {"echo": EchoStep, "fail": FailStep, "counter": CounterStep}


@pytest.fixture
def registry() -> StepRegistry:
    registry = StepRegistry()
    for key, step_class in STEP_CLASSES.items():
        registry.register(key, step_class)
    return registry


@pytest.fixture
def global_registry():
    """Register the test prototypes with the default registry used by the CLI."""
    for key, step_class in STEP_CLASSES.items():
        REGISTRY.register(key, step_class)
    yield REGISTRY
    for key in STEP_CLASSES:
        REGISTRY.unregister(key)


@pytest.fixture
def run_log() -> InMemoryRunLogStore:
    return InMemoryRunLogStore()


@pytest.fixture
def step_classes():
    return STEP_CLASSES


@pytest.fixture(autouse=True)
def _reset_store(monkeypatch):
    for name in ("ETLFLOW_CONFIG", "ETLFLOW_DATABASE_URL", "DATABASE_URL", "ETLFLOW_FLOWS"):
        monkeypatch.delenv(name, raising=False)
    persistence._store_instance = None
    yield
    persistence._store_instance = None


@pytest.fixture
def load_flow() -> FlowDefinition:
    """The flow used across tests: extract, transform and load customers."""
    return FlowDefinition(
        uid="flow-load",
        alias="load_customers",
        name="Load",
        steps=[
            StepDefinition(
                uid="extract",
                name="Extract",
                prototype="echo",
                position=1,
                config={"rows": 100, "messages": ["read 100 rows"]},
            ),
            StepDefinition(
                uid="transform",
                name="Transform",
                prototype="fail",
                position=2,
                config={"message": "bad row"},
            ),
        ],
    )
