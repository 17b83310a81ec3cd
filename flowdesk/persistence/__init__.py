"""Persistence layer for flowdesk instances."""

from __future__ import annotations

import os
from typing import Optional

from ..config import FlowdeskConfig, load_config
from .inmemory import InMemoryFlowRepository
from .repository import Attachments, FlowRepository, FlowSession
from .sql import SQLFlowRepository

_repository_instance: FlowRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[FlowdeskConfig] = None
) -> FlowRepository:
    """Factory function to obtain a flow repository.

    The repository backend is selected based on ``database_url`` which can be
    provided explicitly, via environment variable ``FLOWDESK_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("FLOWDESK_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _repository_instance = InMemoryFlowRepository()
        return _repository_instance

    if database_url.startswith(("sqlite", "postgres")):
        _repository_instance = SQLFlowRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "Attachments",
    "FlowRepository",
    "FlowSession",
    "InMemoryFlowRepository",
    "SQLFlowRepository",
    "get_repository",
]
