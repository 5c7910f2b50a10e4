"""Plain HTTP connector.

Forwards requests to ``base_url + endpoint``. Any response below 500 is
handed back to the caller, so 4xx bodies are data rather than errors.
"""

import time
from typing import Any, Optional
from urllib.parse import urlparse

import httpx
import structlog

from app.config import get_settings
from core.constants import DEFAULT_JSON_HEADERS, Protocol
from core.exceptions import ConfigurationError, ExecutionError
from integrations.base import BaseConnector

logger = structlog.get_logger(__name__)

_BODY_METHODS = ("POST", "PUT", "PATCH", "DELETE")


class HttpConnector(BaseConnector):
    """Connector for arbitrary HTTP endpoints."""

    protocol = Protocol.HTTP

    def __init__(
        self,
        connector_id: str,
        name: str,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        protocol: Any = None,
        **kwargs,
    ):
        super().__init__(connector_id, name, protocol or type(self).protocol, **kwargs)
        if not base_url:
            raise ConfigurationError(
                f"Base URL is required for {self.protocol.value} connector",
                {"connectorId": connector_id},
            )
        self.base_url = base_url.rstrip("/")
        self.headers = {**DEFAULT_JSON_HEADERS, **(headers or {})}

    async def configure(self, config: Optional[dict] = None) -> None:
        config = config or {}
        base_url = config.get("baseUrl", self.base_url)
        if not isinstance(base_url, str) or not base_url:
            raise ConfigurationError("Invalid baseUrl in configuration", {"connectorId": self.id})
        headers = config.get("headers")
        if headers is not None and not isinstance(headers, dict):
            raise ConfigurationError("Connector headers must be a mapping", {"connectorId": self.id})

        self.base_url = base_url.rstrip("/")
        if headers:
            self.headers = {**self.headers, **headers}
        if "timeout" in config:
            self.timeout = float(config["timeout"])
        await self.close()
        logger.info("Connector configured", connector_id=self.id, protocol=self.protocol.value)

    async def validate(self) -> bool:
        if not await super().validate():
            return False
        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.warning(
                "Invalid base URL protocol - must be http or https",
                connector_id=self.id,
                base_url=self.base_url,
            )
            return False
        if get_settings().CONNECTOR_VERIFY_CONNECTIVITY:
            return await self._probe()
        return True

    async def _probe(self) -> bool:
        try:
            await self.send_request("GET", "/")
        except ExecutionError:
            logger.warning("Connectivity test failed", connector_id=self.id, base_url=self.base_url)
            return False
        return True

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}{endpoint}"

    def _accepts(self, status_code: int) -> bool:
        return status_code < 500

    def _client_for_requests(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._build_client(headers=self.headers)
        return self._client

    async def send_request(
        self,
        method: str,
        endpoint: str = "",
        data: Any = None,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Send one request and return the parsed response body."""
        method = method.upper()
        url = self._url(endpoint)
        start = time.monotonic()
        try:
            response = await self._client_for_requests().request(
                method,
                url,
                json=data if data is not None and method in _BODY_METHODS else None,
                headers=headers,
                params=params,
            )
        except httpx.HTTPError as e:
            logger.error(
                "HTTP request failed",
                connector_id=self.id,
                method=method,
                url=url,
                error=str(e),
            )
            raise ExecutionError(
                f"HTTP request failed: {e}", details={"connectorId": self.id, "url": url}
            ) from e

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        if not self._accepts(response.status_code):
            logger.error(
                "HTTP request rejected",
                connector_id=self.id,
                method=method,
                url=url,
                status_code=response.status_code,
            )
            raise ExecutionError(
                f"HTTP request failed: {response.status_code} {response.text[:200]}",
                details={"connectorId": self.id, "url": url, "statusCode": response.status_code},
            )

        logger.debug(
            "HTTP request completed",
            connector_id=self.id,
            method=method,
            url=url,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        return self._parse_response(response)

    @staticmethod
    def _parse_response(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text

    async def invoke(self, request: dict) -> Any:
        return await self.send_request(
            request.get("method", "GET"),
            request.get("endpoint", ""),
            data=request.get("data"),
            headers=request.get("headers"),
            params=request.get("params"),
        )
