from __future__ import annotations

import os
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_MAX_EXECUTION_TIME, DEFAULT_STEP_TIMEOUT


class EtlFlowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    flows_path: Optional[str] = Field(
        default=None, description="YAML file with the flow definitions"
    )
    step_modules: List[str] = Field(
        default_factory=list,
        description="Modules imported at startup to register step prototypes",
    )
    max_execution_time: int = DEFAULT_MAX_EXECUTION_TIME
    default_step_timeout: int = DEFAULT_STEP_TIMEOUT
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> EtlFlowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to ETLFLOW_CONFIG env
            variable or 'etlflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("ETLFLOW_CONFIG", "etlflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = EtlFlowConfig(**data)
    else:
        config = EtlFlowConfig()

    env_db_url = os.getenv("ETLFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_flows = os.getenv("ETLFLOW_FLOWS")
    if env_flows:
        config.flows_path = env_flows
    return config
