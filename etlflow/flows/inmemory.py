"""In-memory flow repository."""

from __future__ import annotations

from typing import Dict, Iterable

from ..contracts import FlowDefinition
from .repository import FlowRepository
from .selectors import select_flow


class InMemoryFlowRepository(FlowRepository):
    """Keep flow definitions in a dictionary keyed by UID."""

    def __init__(self, flows: Iterable[FlowDefinition] = ()) -> None:
        self._flows: Dict[str, FlowDefinition] = {}
        for flow in flows:
            self.add_flow(flow)

    def add_flow(self, flow: FlowDefinition) -> None:
        self._flows[flow.uid] = flow

    async def get_flow(self, selector: str) -> FlowDefinition:
        return select_flow(selector, self._flows.values())

    async def list_flows(self) -> list[FlowDefinition]:
        return list(self._flows.values())
