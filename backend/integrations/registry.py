"""
Connector Registry.

Maps each protocol to the single connector instance serving it. The
composition root owns one registry and hands it to the factory and the
step executor; ``get_connector_registry()`` returns the process-wide
default used when nothing is injected.
"""

from typing import Any, Optional

import structlog

from core.constants import Protocol
from core.exceptions import ConfigurationError, ConflictError, NotFoundError
from integrations.base import BaseConnector

logger = structlog.get_logger(__name__)


def _key(protocol: Any) -> str:
    return protocol.value if isinstance(protocol, Protocol) else str(protocol)


class ConnectorRegistry:
    """One connector per protocol, for the lifetime of the registry."""

    def __init__(self):
        self._connectors: dict[str, BaseConnector] = {}

    def register_connector(self, connector: BaseConnector) -> None:
        """Register a connector. A protocol can only be registered once."""
        if connector is None or not connector.id or not connector.name or not connector.protocol:
            raise ConfigurationError("Invalid connector: id, name and protocol are required")

        key = _key(connector.protocol)
        if key in self._connectors:
            raise ConflictError(
                f"Connector for protocol {key} is already registered",
                {"protocol": key, "registeredId": self._connectors[key].id},
            )
        self._connectors[key] = connector
        logger.info(
            "Connector registered",
            connector_id=connector.id,
            name=connector.name,
            protocol=key,
        )

    def get_connector(self, protocol: Any) -> BaseConnector:
        key = _key(protocol)
        connector = self._connectors.get(key)
        if connector is None:
            raise NotFoundError(f"No connector registered for protocol: {key}", {"protocol": key})
        return connector

    def has_connector(self, protocol: Any) -> bool:
        return _key(protocol) in self._connectors

    def get_all_connectors(self) -> list[BaseConnector]:
        return list(self._connectors.values())

    def remove_connector(self, protocol: Any) -> BaseConnector:
        key = _key(protocol)
        connector = self._connectors.pop(key, None)
        if connector is None:
            raise NotFoundError(f"No connector registered for protocol: {key}", {"protocol": key})
        logger.info("Connector removed", connector_id=connector.id, protocol=key)
        return connector

    def clear_registry(self) -> None:
        count = len(self._connectors)
        self._connectors.clear()
        logger.info("Connector registry cleared", removed=count)

    async def close_all(self) -> None:
        """Close HTTP clients held by registered connectors."""
        for connector in self._connectors.values():
            await connector.close()


# ─── Singleton ────────────────────────────────────────────────

_registry: Optional[ConnectorRegistry] = None


def get_connector_registry() -> ConnectorRegistry:
    """Get or create the process-wide connector registry."""
    global _registry
    if _registry is None:
        _registry = ConnectorRegistry()
    return _registry
