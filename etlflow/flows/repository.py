"""Repository abstraction for flow definitions."""

from __future__ import annotations

from typing import Protocol

from ..contracts import FlowDefinition


class FlowRepository(Protocol):
    """Protocol for flow configuration backends."""

    async def get_flow(self, selector: str) -> FlowDefinition:
        """Return the flow matching a UID, alias or ``alias:version`` selector."""

    async def list_flows(self) -> list[FlowDefinition]:
        """Return all known flows."""
