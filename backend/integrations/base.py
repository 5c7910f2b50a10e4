"""Connector base class shared by every protocol adapter."""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
import structlog

from app.config import get_settings
from core.constants import Protocol
from core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

SUPPORTED_PROTOCOLS = frozenset(p.value for p in Protocol)


def normalize_protocol(protocol: Any) -> Protocol:
    """Return the Protocol for a tag like "REST" or Protocol.REST."""
    value = protocol.value if isinstance(protocol, Protocol) else protocol
    if value not in SUPPORTED_PROTOCOLS:
        raise ConfigurationError(f"Unsupported protocol: {value}", {"protocol": value})
    return Protocol(value)


class BaseConnector(ABC):
    """An adapter to one external system over one protocol.

    Lifecycle: construct -> ``configure()`` -> ``validate()`` -> ``invoke()``.
    Construction fails fast on an unsupported protocol.
    """

    protocol: Protocol

    def __init__(
        self,
        connector_id: str,
        name: str,
        protocol: Any,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.id = connector_id
        self.name = name
        self.protocol = normalize_protocol(protocol)
        self.timeout = timeout if timeout is not None else get_settings().CONNECTOR_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @abstractmethod
    async def configure(self, config: Optional[dict] = None) -> None:
        """Apply protocol-specific settings."""

    async def validate(self) -> bool:
        """Check identity fields. Subclasses extend with protocol checks."""
        if not self.id or not self.name:
            logger.warning("Connector is missing id or name", protocol=self.protocol.value)
            return False
        return True

    @abstractmethod
    async def invoke(self, request: dict) -> Any:
        """Perform one call described by a step's request payload."""

    def _build_client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(float(self.timeout)),
            transport=self._transport,
            **kwargs,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def describe(self) -> dict:
        return {"id": self.id, "name": self.name, "protocol": self.protocol.value}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} protocol={self.protocol.value}>"
