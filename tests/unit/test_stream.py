"""Tests for progress streams."""

import pytest

from etlflow.stream import ProgressStream


async def source():
    yield "one\n"
    yield "two\n"
    yield {"done": True}


@pytest.mark.asyncio
async def test_messages_then_result():
    stream = ProgressStream(source())
    assert not stream.finished
    with pytest.raises(RuntimeError):
        stream.result

    assert await stream.collect() == ["one\n", "two\n"]
    assert stream.finished
    assert stream.result == {"done": True}


@pytest.mark.asyncio
async def test_stream_without_result():
    async def only_messages():
        yield "hello\n"

    stream = ProgressStream(only_messages())
    assert [m async for m in stream] == ["hello\n"]
    assert stream.result is None


@pytest.mark.asyncio
async def test_aclose_finalizes_the_source():
    closed = []

    async def interruptible():
        try:
            yield "one\n"
            yield "two\n"
        finally:
            closed.append(True)

    stream = ProgressStream(interruptible())
    assert await stream.__anext__() == "one\n"
    await stream.aclose()
    assert closed == [True]
