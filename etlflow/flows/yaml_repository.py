"""Flow repository backed by a YAML document."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, List, Optional

import yaml
from pydantic import ValidationError

from ..contracts import FlowDefinition
from ..errors import ConfigurationError
from .repository import FlowRepository
from .selectors import select_flow

logger = logging.getLogger(__name__)


def parse_flows(data: Any, source: str = "<string>") -> List[FlowDefinition]:
    """Turn a loaded YAML document into flow definitions.

    The document must be a mapping with a ``flows`` list.
    """
    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("flows", []), list):
        raise ConfigurationError(f"{source}: expected a mapping with a 'flows' list")

    flows: List[FlowDefinition] = []
    seen: set[str] = set()
    for index, item in enumerate(data.get("flows") or []):
        try:
            flow = FlowDefinition.model_validate(item)
        except ValidationError as exc:
            raise ConfigurationError(f"{source}: invalid flow #{index + 1}: {exc}") from exc
        if flow.uid in seen:
            raise ConfigurationError(f"{source}: duplicate flow uid {flow.uid}")
        seen.add(flow.uid)
        flows.append(flow)
    return flows


class YamlFlowRepository(FlowRepository):
    """Read flow definitions from a YAML file.

    The file is read on first access and cached; call :meth:`reload` to pick
    up changes.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._flows: Optional[List[FlowDefinition]] = None

    @classmethod
    def from_string(cls, document: str) -> "YamlFlowRepository":
        repository = cls("<string>")
        repository._flows = parse_flows(yaml.safe_load(document))
        return repository

    def _read(self) -> List[FlowDefinition]:
        if not os.path.exists(self.path):
            raise ConfigurationError(f"Flow file {self.path} does not exist")
        with open(self.path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Cannot parse {self.path}: {exc}") from exc
        flows = parse_flows(data, self.path)
        logger.debug(f"Loaded {len(flows)} flows from {self.path}")
        return flows

    async def reload(self) -> None:
        self._flows = await asyncio.to_thread(self._read)

    async def _load(self) -> List[FlowDefinition]:
        if self._flows is None:
            await self.reload()
        return self._flows or []

    async def get_flow(self, selector: str) -> FlowDefinition:
        return select_flow(selector, await self._load())

    async def list_flows(self) -> list[FlowDefinition]:
        return list(await self._load())
