"""Analysis executor delegating statistics to the external analysis API."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..contracts import ExecutionContext, ResolvedNode
from .external_api import ExternalApiClient

logger = logging.getLogger(__name__)


class AnalysisExecutor:
    """Runs ``correlation`` and ``anova`` analyses remotely."""

    def __init__(self, client: ExternalApiClient) -> None:
        self._client = client

    async def __call__(
        self, node: ResolvedNode, input: Dict[str, Any], context: ExecutionContext
    ) -> Dict[str, Any]:
        analysis_type = node.data.get("analysisType")
        logger.info(f"Running analysis node {node.id}: {analysis_type}")

        if analysis_type == "correlation":
            result = await self._post("analysis/correlation", input, node)
            return {
                **input,
                "analysisResult": result,
                "correlationMatrix": result.get("correlationMatrix"),
                "significantPairs": result.get("significantPairs"),
            }
        if analysis_type == "anova":
            result = await self._post("analysis/anova", input, node)
            return {
                **input,
                "analysisResult": result,
                "anovaTable": result.get("anovaTable"),
                "pValue": result.get("pValue"),
            }
        raise ValueError(f"unsupported analysis type: {analysis_type}")

    async def _post(
        self, path: str, input: Dict[str, Any], node: ResolvedNode
    ) -> Dict[str, Any]:
        result = await self._client.post(
            path,
            {"data": input.get("dataset"), "parameters": node.data.get("parameters")},
        )
        return result or {}
