"""Node executors and the registry dispatching to them."""

from __future__ import annotations

from typing import Optional

from ..config import FlowdeskConfig, load_config
from ..constants import COMPLAINT_SELECTOR_TYPE
from .analysis import AnalysisExecutor
from .complaint import execute_complaint_selector
from .data import execute_data_source, execute_transformation
from .export import execute_export
from .external_api import ExternalApiClient
from .registry import (
    DEFAULT_STRATEGIES,
    NodeExecutor,
    NodeExecutorRegistry,
    classify_suggestion,
    describe_error,
)
from .visualization import execute_visualization


def build_default_registry(
    config: Optional[FlowdeskConfig] = None,
    client: Optional[ExternalApiClient] = None,
) -> NodeExecutorRegistry:
    """Create a registry with every built-in executor registered."""

    config = config or load_config()
    client = client or ExternalApiClient(config.external_api)

    registry = NodeExecutorRegistry()
    registry.register("DataSourceNode", execute_data_source)
    registry.register("TransformationNode", execute_transformation)
    registry.register("AnalysisNode", AnalysisExecutor(client))
    registry.register("VisualizationNode", execute_visualization)
    registry.register("ExportNode", execute_export)
    registry.register(COMPLAINT_SELECTOR_TYPE, execute_complaint_selector)
    return registry


__all__ = [
    "DEFAULT_STRATEGIES",
    "ExternalApiClient",
    "NodeExecutor",
    "NodeExecutorRegistry",
    "build_default_registry",
    "classify_suggestion",
    "describe_error",
]
