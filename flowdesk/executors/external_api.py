"""HTTP client for the external analysis service."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import ExternalApiConfig
from ..errors import ExternalServiceError

logger = logging.getLogger(__name__)


async def _log_request(request: httpx.Request) -> None:
    logger.info(f"External API request: {request.method} {request.url}")


async def _log_response(response: httpx.Response) -> None:
    logger.info(
        f"External API response: {response.status_code} {response.reason_phrase}"
    )


class ExternalApiClient:
    """Thin async JSON client over :class:`httpx.AsyncClient`.

    Timeouts come from the client configuration only; callers do not add
    their own.
    """

    def __init__(
        self,
        config: Optional[ExternalApiConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or ExternalApiConfig()
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            headers=self.config.headers,
            transport=transport,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    async def request(
        self,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, url, json=json, params=params
            )
            response.raise_for_status()
        except httpx.ConnectError as exc:
            logger.error(f"{method} {url} failed: {exc}")
            raise ExternalServiceError(
                f"connection refused by external service: {exc}",
                code="ECONNREFUSED",
            ) from exc
        except httpx.TimeoutException as exc:
            logger.error(f"{method} {url} timed out: {exc}")
            raise ExternalServiceError(
                f"external service timed out: {exc}", code="ETIMEDOUT"
            ) from exc
        except httpx.HTTPStatusError as exc:
            logger.error(f"{method} {url} failed: {exc}")
            raise ExternalServiceError(
                f"external service returned {exc.response.status_code}",
                status=exc.response.status_code,
            ) from exc
        return response.json()

    async def get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", url, params=params)

    async def post(self, url: str, data: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("POST", url, json=data or {})

    async def delete(self, url: str) -> Any:
        return await self.request("DELETE", url)

    async def aclose(self) -> None:
        await self._client.aclose()
