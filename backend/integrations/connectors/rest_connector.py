"""REST connector: JSON APIs where only 2xx responses count as success."""

from typing import Any, Optional

from core.constants import Protocol
from integrations.connectors.http_connector import HttpConnector

_PAYLOAD_METHODS = ("POST", "PUT", "PATCH")


class RestConnector(HttpConnector):
    """Connector for RESTful APIs."""

    protocol = Protocol.REST

    def _url(self, endpoint: str) -> str:
        if endpoint and not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.base_url}{endpoint}"

    def _accepts(self, status_code: int) -> bool:
        return 200 <= status_code < 300

    async def send_request(
        self,
        method: str,
        endpoint: str = "",
        data: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Send a REST call; the body is only sent for POST, PUT and PATCH."""
        if method.upper() not in _PAYLOAD_METHODS:
            data = None
        return await super().send_request(method, endpoint, data, headers, params)
