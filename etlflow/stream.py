"""Async progress streams that finish with a result."""

from __future__ import annotations

from typing import Any, AsyncIterator, Generic, List, Optional, TypeVar

ResultT = TypeVar("ResultT")


class ProgressStream(Generic[ResultT]):
    """Iterate the progress messages of a run, then read its result.

    ``source`` is an async generator yielding human readable ``str``
    messages and, as its last item, the result value. Iterating the stream
    only produces the messages; once it is exhausted the result is available
    via :attr:`result`.
    """

    def __init__(self, source: AsyncIterator[Any]) -> None:
        self._source = source
        self._result: Optional[ResultT] = None
        self._finished = False

    def __aiter__(self) -> "ProgressStream[ResultT]":
        return self

    async def __anext__(self) -> str:
        while True:
            try:
                item = await self._source.__anext__()
            except StopAsyncIteration:
                self._finished = True
                raise
            if isinstance(item, str):
                return item
            self._result = item

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def result(self) -> Optional[ResultT]:
        """The terminal value of the run, ``None`` if the source produced none."""
        if not self._finished:
            raise RuntimeError("Result is not available before the stream is exhausted")
        return self._result

    async def collect(self) -> List[str]:
        """Drain the stream and return all messages."""
        return [message async for message in self]

    async def aclose(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
