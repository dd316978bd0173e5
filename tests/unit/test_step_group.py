"""Tests for running step groups against the run log."""

import pytest

from etlflow.contracts import FlowDefinition, RunContext, StepDefinition, TaskContext
from etlflow.errors import StepExecutionError
from etlflow.observers import RecordingObserver
from etlflow.persistence import InMemoryRunLogStore, RunLogRecord
from etlflow.placeholders import render_placeholders
from etlflow.results import IncrementalStepResult, StepResult
from etlflow.steps import Step, StepGroup, build_step_group
from etlflow.stream import ProgressStream


async def run_group(group, flow_run_uid="run-1", task=None):
    context = RunContext(flow_run_uid=flow_run_uid, task=task or TaskContext())
    stream = ProgressStream(group.run(context))
    messages = await stream.collect()
    return messages, stream.result


def echo(name, position, **config):
    return StepDefinition(
        uid=name.lower(), name=name, prototype="echo", position=position, config=config
    )


def flow_of(*steps):
    return FlowDefinition(uid="flow-1", alias="test_flow", steps=list(steps))


@pytest.mark.asyncio
async def test_load_flow_continues_after_non_critical_failure(load_flow, registry, run_log):
    group = build_step_group(load_flow, run_log, registry)
    messages, result = await run_group(group)

    records = await run_log.list_for_flow_run("run-1")
    assert [r.step_name for r in records] == ["Extract", "Transform"]
    extract, transform = records
    assert extract.success_flag and extract.result_count == 100
    assert transform.error_flag and not transform.success_flag
    assert transform.error_message == "bad row"
    assert transform.output == "    working\n"

    assert messages[:4] == [
        "  1. Extract:\n",
        "    read 100 rows\n",
        "  2. Transform:\n",
        "    working\n",
    ]
    assert messages[4] == (
        f"\n✗ ERROR: bad row (see log-ID {transform.error_log_id} for details)\n"
    )
    assert result == StepResult(step_run_uid="run-1", processed_rows=100, data={"steps": 2})


@pytest.mark.asyncio
async def test_steps_run_in_position_order(registry, run_log):
    flow = flow_of(echo("C", 3), echo("A", 1), echo("B", 2))
    group = build_step_group(flow, run_log, registry)
    messages, _ = await run_group(group)

    assert messages == ["  1. A:\n", "  2. B:\n", "  3. C:\n"]
    records = await run_log.list_for_flow_run("run-1")
    assert [(r.position, r.step_name) for r in records] == [(1, "A"), (2, "B"), (3, "C")]


@pytest.mark.asyncio
async def test_previous_result_and_parameters_reach_the_next_step(registry, run_log):
    group = build_step_group(flow_of(echo("A", 1, rows=100), echo("B", 2)), run_log, registry)
    task = TaskContext(parameters={"since": "2024-01-01"})
    await run_group(group, task=task)

    first, second = group.steps
    assert first.contexts[0].previous_result is None
    context = second.contexts[0]
    assert context.previous_result.processed_rows == 100
    assert context.placeholders["~parameter:since"] == "2024-01-01"
    assert context.placeholders["flow_run_uid"] == "run-1"
    assert context.placeholders["step_run_uid"] == context.step_run_uid


@pytest.mark.asyncio
async def test_disabled_step_gets_a_row_but_does_not_run(registry, run_log):
    disabled = StepDefinition(
        uid="b", name="B", prototype="echo", position=2, disabled=True
    )
    group = build_step_group(flow_of(echo("A", 1), disabled, echo("C", 3)), run_log, registry)
    messages, _ = await run_group(group)

    assert "  2. B - disabled\n" in messages
    assert group.steps[1].contexts == []
    record = (await run_log.list_for_flow_run("run-1"))[1]
    assert record.step_disabled_flag
    assert record.end_time is not None
    assert not record.success_flag and not record.error_flag
    assert record.status == "disabled"
    # the step after a disabled one starts without a previous result
    assert group.steps[2].contexts[0].previous_result is None


@pytest.mark.asyncio
async def test_stop_flow_on_error_ends_the_run(load_flow, registry, run_log):
    transform = load_flow.steps[1].model_copy(update={"stop_flow_on_error": True})
    flow = load_flow.model_copy(
        update={"steps": [load_flow.steps[0], transform, echo("Load", 3)]}
    )
    group = build_step_group(flow, run_log, registry)

    with pytest.raises(StepExecutionError) as excinfo:
        await run_group(group)

    assert excinfo.value.message == "bad row"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    records = await run_log.list_for_flow_run("run-1")
    assert [r.step_name for r in records] == ["Extract", "Transform"]
    assert records[1].error_log_id == excinfo.value.log_id


@pytest.mark.asyncio
async def test_incremental_step_sees_its_last_increment(registry, run_log):
    flow = flow_of(StepDefinition(uid="counter", name="Count", prototype="counter"))
    group = build_step_group(flow, run_log, registry)

    await run_group(group, "run-1")
    await run_group(group, "run-2")

    counter = group.steps[0]
    assert counter.seen == [None, "1"]
    first = (await run_log.list_for_flow_run("run-1"))[0]
    second = (await run_log.list_for_flow_run("run-2"))[0]
    assert first.incremental_flag and first.incremental_after_run is None
    assert second.incremental_after_run == first.step_run_uid
    assert second.result_data == '{"processed_rows_counter": 1, "increment_value": "2"}'


@pytest.mark.asyncio
async def test_failed_and_invalidated_runs_are_not_used_as_last_run(registry, run_log):
    flow = flow_of(StepDefinition(uid="counter", name="Count", prototype="counter"))
    group = build_step_group(flow, run_log, registry)
    await run_group(group, "run-1")
    await run_group(group, "run-2")

    second = (await run_log.list_for_flow_run("run-2"))[0]
    assert await run_log.invalidate(second.step_run_uid)
    await run_log.create(
        RunLogRecord(
            step_run_uid="failed-run",
            flow_run_uid="run-x",
            step_uid="counter",
            error_flag=True,
            result_data='{"increment_value": "99"}',
        )
    )

    await run_group(group, "run-3")
    assert group.steps[0].seen[-1] == "1"


@pytest.mark.asyncio
async def test_non_incremental_result_clears_incremental_after_run(registry, run_log):
    group = build_step_group(flow_of(echo("A", 1, rows=1)), run_log, registry)
    await run_group(group, "run-1")
    await run_group(group, "run-2")

    record = (await run_log.list_for_flow_run("run-2"))[0]
    assert record.incremental_flag is False
    assert record.incremental_after_run is None
    # the last result is still handed to the step
    assert group.steps[0].contexts[1].last_result.processed_rows == 1


@pytest.mark.asyncio
async def test_unreadable_last_result_fails_the_step(registry, run_log):
    await run_log.create(
        RunLogRecord(
            step_run_uid="old",
            flow_run_uid="run-0",
            step_uid="a",
            success_flag=True,
            result_data="not json",
        )
    )
    group = build_step_group(flow_of(echo("A", 1), echo("B", 2)), run_log, registry)
    messages, _ = await run_group(group)

    assert group.steps[0].contexts == []
    record = (await run_log.list_for_flow_run("run-1"))[0]
    assert record.error_flag
    assert "Cannot read the last result" in record.error_message
    assert record.incremental_after_run == "old"
    assert any(m.startswith("\n✗ ERROR: Cannot read the last result") for m in messages)
    assert group.steps[1].contexts


@pytest.mark.asyncio
async def test_nested_group_positions_and_output(registry, run_log):
    batch = StepDefinition(
        name="Batch",
        prototype="step_group",
        position=2,
        steps=[
            StepDefinition(name="Inner A", prototype="echo", position=1),
            StepDefinition(name="Inner B", prototype="echo", position=2),
        ],
    )
    group = build_step_group(flow_of(echo("A", 1), batch, echo("C", 3)), run_log, registry)
    messages, result = await run_group(group)

    records = await run_log.list_for_flow_run("run-1")
    assert [(r.position, r.step_name) for r in records] == [
        (1, "A"),
        (2, "Batch"),
        (3, "Inner A"),
        (4, "Inner B"),
        (5, "C"),
    ]
    assert records[1].output == "Ran 2 steps"
    assert records[1].step_uid == "flow-1/Batch"
    assert records[2].step_uid == "flow-1/Batch/Inner A"
    assert "      3. Inner A:\n" in messages
    assert "  5. C:\n" in messages
    assert result.data == {"steps": 5}


@pytest.mark.asyncio
async def test_failure_inside_nested_group_skips_its_remaining_steps(registry, run_log):
    batch = StepDefinition(
        name="Batch",
        prototype="step_group",
        position=2,
        steps=[
            StepDefinition(name="Broken", prototype="fail", position=1, stop_flow_on_error=True),
            StepDefinition(name="Skipped", prototype="echo", position=2),
        ],
    )
    group = build_step_group(flow_of(echo("A", 1), batch, echo("C", 3)), run_log, registry)
    await run_group(group)

    records = {r.step_name: r for r in await run_log.list_for_flow_run("run-1")}
    assert "Skipped" not in records
    assert records["Broken"].error_flag
    assert records["Batch"].error_flag
    assert records["Batch"].output == "ERROR: one of the steps failed."
    assert records["Batch"].error_log_id == records["Broken"].error_log_id
    assert records["C"].success_flag and records["C"].position == 5


def test_group_incrementality_and_timeout(run_log, step_classes):
    counters = StepGroup("g", run_log=run_log)
    counters.add_step(step_classes["counter"]("c1")).add_step(step_classes["counter"]("c2"))
    assert counters.is_incremental()
    assert counters.get_timeout() == 60

    mixed = StepGroup("m", run_log=run_log)
    mixed.add_step(step_classes["counter"]("c")).add_step(step_classes["echo"]("e"))
    assert not mixed.is_incremental()


def test_duplicate_step_uid_is_rejected(run_log, step_classes):
    group = StepGroup("g", run_log=run_log)
    group.add_step(step_classes["echo"]("e"))
    with pytest.raises(ValueError):
        group.add_step(step_classes["echo"]("e"))


@pytest.mark.asyncio
async def test_debug_info_and_observers(load_flow, registry, run_log):
    observer = RecordingObserver()
    group = build_step_group(load_flow, run_log, registry, observers=[observer])
    await run_group(group)

    extract = (await run_log.list_for_flow_run("run-1"))[0]
    assert extract.debug_info == '{"rows": 100}'
    assert [(kind, name) for kind, name, _ in observer.events] == [
        ("before", "Extract"),
        ("after", "Extract"),
        ("before", "Transform"),
        ("after", "Transform"),
    ]
    assert observer.events[1][2] == "succeeded"
    assert observer.events[3][2] == "failed"


class WrongUidStep(Step):
    async def run(self, context):
        yield StepResult(step_run_uid="somewhere-else", processed_rows=1)


@pytest.mark.asyncio
async def test_result_is_bound_to_its_step_run(registry, run_log):
    group = StepGroup("g", run_log=run_log)
    group.add_step(WrongUidStep("w"))
    group.add_step(registry.get("echo")("e"))
    await run_group(group)

    record = (await run_log.list_for_flow_run("run-1"))[0]
    previous = group.steps[1].contexts[0].previous_result
    assert previous.step_run_uid == record.step_run_uid


class BrokenLogStore(InMemoryRunLogStore):
    async def update(self, record):
        if record.error_flag:
            raise RuntimeError("database is gone")
        await super().update(record)


@pytest.mark.asyncio
async def test_run_log_failure_is_reported_and_not_raised(load_flow, registry):
    group = build_step_group(load_flow, BrokenLogStore(), registry)
    messages, _ = await run_group(group)

    assert "\n  ✗ Could not save run log: database is gone\n" in messages
    assert messages[-1].startswith("\n✗ ERROR: bad row")


@pytest.mark.asyncio
async def test_run_log_failure_does_not_mask_a_critical_error(load_flow, registry):
    store = BrokenLogStore()
    transform = load_flow.steps[1].model_copy(update={"stop_flow_on_error": True})
    flow = load_flow.model_copy(
        update={"steps": [load_flow.steps[0], transform, echo("Load", 3)]}
    )
    group = build_step_group(flow, store, registry)
    stream = ProgressStream(group.run(RunContext(flow_run_uid="run-1")))
    messages = []

    with pytest.raises(StepExecutionError) as excinfo:
        async for message in stream:
            messages.append(message)

    assert excinfo.value.message == "bad row"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert "\n  ✗ Could not save run log: database is gone\n" in messages
    records = await store.list_for_flow_run("run-1")
    assert [r.step_name for r in records] == ["Extract", "Transform"]


class ScanStep(Step):
    """Incremental step that has not found a watermark yet."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.contexts = []

    def is_incremental(self) -> bool:
        return True

    async def run(self, context):
        self.contexts.append(context)
        yield IncrementalStepResult(step_run_uid=context.step_run_uid, processed_rows=0)


@pytest.mark.asyncio
async def test_empty_increment_is_available_to_the_next_run(run_log):
    step = ScanStep("scan")
    group = StepGroup("g", run_log=run_log)
    group.add_step(step)

    await run_group(group, "run-1")
    await run_group(group, "run-2")

    context = step.contexts[1]
    assert isinstance(context.last_result, IncrementalStepResult)
    assert context.placeholders["last_run_increment_value"] == ""
    assert (
        render_placeholders("changed > '[#last_run_increment_value#]'", context.placeholders)
        == "changed > ''"
    )
    first = (await run_log.list_for_flow_run("run-1"))[0]
    assert first.incremental_flag is False
