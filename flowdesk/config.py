from __future__ import annotations

import os
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_EXTERNAL_API_TIMEOUT, DEFAULT_EXTERNAL_API_URL


class ExternalApiConfig(BaseModel):
    """Configuration for the external analysis service."""

    base_url: str = DEFAULT_EXTERNAL_API_URL
    timeout: float = DEFAULT_EXTERNAL_API_TIMEOUT
    headers: Dict[str, str] = Field(
        default_factory=lambda: {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
    )


class FlowdeskConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    storage_root: str = "uploads"
    external_api: ExternalApiConfig = Field(default_factory=ExternalApiConfig)


def load_config(path: Optional[str] = None) -> FlowdeskConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FLOWDESK_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("FLOWDESK_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = FlowdeskConfig(**data)
    else:
        config = FlowdeskConfig()

    env_db_url = os.getenv("FLOWDESK_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_api_url = os.getenv("EXTERNAL_API_URL")
    if env_api_url:
        config.external_api.base_url = env_api_url
    return config
