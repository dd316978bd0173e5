"""Flow configuration repositories."""

from __future__ import annotations

from typing import Optional

from ..config import EtlFlowConfig, load_config
from .inmemory import InMemoryFlowRepository
from .repository import FlowRepository
from .selectors import SemanticVersion, find_best_version, select_flow
from .yaml_repository import YamlFlowRepository, parse_flows


def get_flow_repository(config: Optional[EtlFlowConfig] = None) -> FlowRepository:
    """Return the flow repository configured by ``flows_path``.

    Without a configured file an empty in-memory repository is returned.
    """
    config = config or load_config()
    if config.flows_path:
        return YamlFlowRepository(config.flows_path)
    return InMemoryFlowRepository()


__all__ = [
    "FlowRepository",
    "InMemoryFlowRepository",
    "SemanticVersion",
    "YamlFlowRepository",
    "find_best_version",
    "get_flow_repository",
    "parse_flows",
    "select_flow",
]
