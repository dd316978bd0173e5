"""Run-log persistence for etlflow."""

from __future__ import annotations

import os
from typing import Optional

from ..config import EtlFlowConfig, load_config
from .inmemory import InMemoryRunLogStore
from .models import FlowRunSummary, RunLogRecord
from .repository import RunLogStore
from .sqlite import SQLiteRunLogStore

_store_instance: RunLogStore | None = None


def get_run_log_store(
    database_url: Optional[str] = None, config: Optional[EtlFlowConfig] = None
) -> RunLogStore:
    """Factory function to obtain a run-log store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``ETLFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.
    """

    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("ETLFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _store_instance = InMemoryRunLogStore()
        return _store_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _store_instance = SQLiteRunLogStore(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        from .postgres import PostgresRunLogStore

        _store_instance = PostgresRunLogStore(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _store_instance


__all__ = [
    "FlowRunSummary",
    "RunLogRecord",
    "RunLogStore",
    "InMemoryRunLogStore",
    "SQLiteRunLogStore",
    "get_run_log_store",
]
