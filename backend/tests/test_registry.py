"""Tests for the connector registry and factory."""

import pytest

from core.constants import Protocol
from core.exceptions import ConfigurationError, ConflictError, NotFoundError
from integrations.connectors.http_connector import HttpConnector
from integrations.connectors.rest_connector import RestConnector
from integrations.connectors.soap_connector import SoapConnector
from integrations.connectors.webhook_connector import WebhookConnector
from integrations.factory import ConnectorFactory
from integrations.registry import ConnectorRegistry, get_connector_registry


@pytest.fixture
def factory(registry, json_transport) -> ConnectorFactory:
    return ConnectorFactory(registry, transport=json_transport)


@pytest.mark.unit
class TestConnectorRegistry:
    def test_register_and_get(self, registry):
        connector = RestConnector("crm", "CRM", "https://crm.example.com")
        registry.register_connector(connector)

        assert registry.get_connector("REST") is connector
        assert registry.get_connector(Protocol.REST) is connector
        assert registry.has_connector(Protocol.REST)

    def test_one_connector_per_protocol(self, registry):
        registry.register_connector(RestConnector("crm", "CRM", "https://crm.example.com"))
        with pytest.raises(ConflictError, match="Connector for protocol REST is already registered"):
            registry.register_connector(RestConnector("erp", "ERP", "https://erp.example.com"))

    def test_conflict_is_a_configuration_error(self, registry):
        registry.register_connector(HttpConnector("h1", "Hook", "https://a.example.com"))
        with pytest.raises(ConfigurationError):
            registry.register_connector(HttpConnector("h2", "Hook", "https://b.example.com"))

    def test_missing_identity_rejected(self, registry):
        with pytest.raises(ConfigurationError, match="Invalid connector"):
            registry.register_connector(RestConnector("", "CRM", "https://crm.example.com"))

    def test_get_unknown_protocol(self, registry):
        with pytest.raises(NotFoundError, match="No connector registered for protocol: SOAP"):
            registry.get_connector(Protocol.SOAP)

    def test_remove_and_clear(self, registry):
        rest = RestConnector("crm", "CRM", "https://crm.example.com")
        registry.register_connector(rest)
        registry.register_connector(WebhookConnector("hook", "Hook", "https://hooks.example.com"))

        assert registry.remove_connector("REST") is rest
        assert not registry.has_connector("REST")
        with pytest.raises(NotFoundError):
            registry.remove_connector("REST")

        registry.clear_registry()
        assert registry.get_all_connectors() == []

    def test_instances_are_independent(self):
        first, second = ConnectorRegistry(), ConnectorRegistry()
        first.register_connector(RestConnector("crm", "CRM", "https://crm.example.com"))
        assert not second.has_connector("REST")

    def test_default_registry_is_shared(self):
        assert get_connector_registry() is get_connector_registry()


@pytest.mark.unit
class TestConnectorFactory:
    async def test_creates_and_registers_rest(self, factory, registry):
        connector = await factory.create_connector(
            "REST",
            {"id": "crm", "name": "CRM", "baseUrl": "https://crm.example.com/", "headers": {"X-Key": "k"}},
        )

        assert isinstance(connector, RestConnector)
        assert connector.base_url == "https://crm.example.com"
        assert connector.headers["X-Key"] == "k"
        assert connector.headers["Content-Type"] == "application/json"
        assert registry.get_connector("REST") is connector

    async def test_creates_each_protocol(self, factory, registry):
        await factory.create_connector("HTTP", {"id": "h", "name": "H", "baseUrl": "http://h.example.com"})
        await factory.create_connector(
            "SOAP", {"id": "s", "name": "S", "wsdlUrl": "https://s.example.com/svc?wsdl"}
        )
        await factory.create_connector(
            "WebSocket", {"id": "w", "name": "W", "webhookUrl": "https://w.example.com/hook"}
        )

        assert isinstance(registry.get_connector("HTTP"), HttpConnector)
        assert isinstance(registry.get_connector("SOAP"), SoapConnector)
        assert isinstance(registry.get_connector("WebSocket"), WebhookConnector)

    async def test_id_and_name_required(self, factory):
        with pytest.raises(ConfigurationError, match="Connector ID and name are required"):
            await factory.create_connector("REST", {"name": "CRM", "baseUrl": "https://crm.example.com"})

    async def test_unsupported_protocol(self, factory):
        with pytest.raises(ConfigurationError, match="Unsupported protocol: FTP"):
            await factory.create_connector("FTP", {"id": "f", "name": "F"})

    @pytest.mark.parametrize(
        "protocol, message",
        [
            ("REST", "Base URL is required"),
            ("SOAP", "WSDL URL is required"),
            ("WebSocket", "Webhook URL is required"),
        ],
    )
    async def test_protocol_specific_url_required(self, factory, protocol, message):
        with pytest.raises(ConfigurationError, match=message):
            await factory.create_connector(protocol, {"id": "x", "name": "X"})

    async def test_failed_validation_is_not_registered(self, factory, registry):
        with pytest.raises(ConfigurationError, match="Connector validation failed for protocol: REST"):
            await factory.create_connector("REST", {"id": "crm", "name": "CRM", "baseUrl": "ftp://crm.example.com"})
        assert not registry.has_connector("REST")

    async def test_second_connector_for_protocol_conflicts(self, factory):
        await factory.create_connector("REST", {"id": "crm", "name": "CRM", "baseUrl": "https://crm.example.com"})
        with pytest.raises(ConflictError):
            await factory.create_connector("REST", {"id": "erp", "name": "ERP", "baseUrl": "https://erp.example.com"})

    async def test_connector_uses_injected_transport(self, factory, json_transport):
        connector = await factory.create_connector(
            "REST", {"id": "crm", "name": "CRM", "baseUrl": "https://crm.example.com"}
        )
        result = await connector.invoke({"method": "GET", "endpoint": "contacts"})

        assert result == {"method": "GET", "path": "/contacts"}
        assert len(json_transport.requests) == 1
