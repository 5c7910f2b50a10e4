"""Connector factory: build, configure, validate and register connectors.

Config keys follow the stored connector shape::

    {"id": "crm", "name": "CRM API", "baseUrl": "https://crm.example.com",
     "headers": {"Authorization": "Bearer ..."}}
"""

from typing import Any, Optional

import httpx
import structlog

from core.constants import Protocol
from core.exceptions import ConfigurationError
from integrations.base import BaseConnector, normalize_protocol
from integrations.connectors.http_connector import HttpConnector
from integrations.connectors.rest_connector import RestConnector
from integrations.connectors.soap_connector import SoapConnector
from integrations.connectors.webhook_connector import WebhookConnector
from integrations.registry import ConnectorRegistry

logger = structlog.get_logger(__name__)


class ConnectorFactory:
    """Creates connectors by protocol and registers them on success."""

    def __init__(
        self,
        registry: ConnectorRegistry,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._registry = registry
        self._transport = transport

    async def create_connector(self, protocol: Any, config: dict) -> BaseConnector:
        """Build the connector for ``protocol`` and register it."""
        config = config or {}
        if not config.get("id") or not config.get("name"):
            raise ConfigurationError("Connector ID and name are required")

        protocol = normalize_protocol(protocol)
        connector = self._instantiate(protocol, config)

        await connector.configure(config)
        if not await connector.validate():
            logger.warning(
                "Connector validation failed",
                connector_id=connector.id,
                protocol=protocol.value,
            )
            raise ConfigurationError(
                f"Connector validation failed for protocol: {protocol.value}",
                {"connectorId": connector.id, "protocol": protocol.value},
            )

        self._registry.register_connector(connector)
        logger.info("Connector created", connector_id=connector.id, protocol=protocol.value)
        return connector

    def _instantiate(self, protocol: Protocol, config: dict) -> BaseConnector:
        common = {"transport": self._transport}
        if "timeout" in config:
            common["timeout"] = float(config["timeout"])

        if protocol in (Protocol.REST, Protocol.HTTP):
            if not config.get("baseUrl"):
                raise ConfigurationError("Base URL is required for REST/HTTP connector")
            connector_cls = RestConnector if protocol == Protocol.REST else HttpConnector
            return connector_cls(
                config["id"],
                config["name"],
                config["baseUrl"],
                headers=config.get("headers"),
                **common,
            )

        if protocol == Protocol.SOAP:
            if not config.get("wsdlUrl"):
                raise ConfigurationError("WSDL URL is required for SOAP connector")
            return SoapConnector(config["id"], config["name"], config["wsdlUrl"], **common)

        if protocol == Protocol.WEBSOCKET:
            if not config.get("webhookUrl"):
                raise ConfigurationError("Webhook URL is required for WebSocket connector")
            return WebhookConnector(
                config["id"],
                config["name"],
                config["webhookUrl"],
                headers=config.get("headers"),
                **common,
            )

        raise ConfigurationError(f"Unsupported protocol: {protocol.value}")
