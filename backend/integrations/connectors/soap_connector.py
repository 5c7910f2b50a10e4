"""SOAP 1.1 connector.

Builds envelopes with ElementTree and posts them to the service endpoint
(the WSDL URL without its ``?wsdl`` query unless ``endpointUrl`` is given).
The first child of the response Body is returned as a dict.
"""

import xml.etree.ElementTree as ET
from typing import Any, Optional
from urllib.parse import urlparse, urlunparse

import httpx
import structlog

from core.constants import Protocol
from core.exceptions import ConfigurationError, ExecutionError
from integrations.base import BaseConnector

logger = structlog.get_logger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"


def _to_element(parent: ET.Element, key: str, value: Any) -> None:
    if isinstance(value, list):
        for item in value:
            _to_element(parent, key, item)
        return
    child = ET.SubElement(parent, key)
    if isinstance(value, dict):
        for sub_key, sub_value in value.items():
            _to_element(child, sub_key, sub_value)
    elif value is not None:
        child.text = str(value).lower() if isinstance(value, bool) else str(value)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _from_element(element: ET.Element) -> Any:
    children = list(element)
    if not children:
        return element.text
    result: dict[str, Any] = {}
    for child in children:
        key = _local_name(child.tag)
        value = _from_element(child)
        if key in result:
            if not isinstance(result[key], list):
                result[key] = [result[key]]
            result[key].append(value)
        else:
            result[key] = value
    return result


class SoapConnector(BaseConnector):
    """Connector for SOAP web services."""

    protocol = Protocol.SOAP

    def __init__(self, connector_id: str, name: str, wsdl_url: str, protocol: Any = None, **kwargs):
        super().__init__(connector_id, name, protocol or Protocol.SOAP, **kwargs)
        self.wsdl_url = wsdl_url
        self.endpoint_url: Optional[str] = None
        self.namespace: Optional[str] = None
        self.headers: dict[str, str] = {}

    async def configure(self, config: Optional[dict] = None) -> None:
        config = config or {}
        if not self.wsdl_url:
            raise ConfigurationError("WSDL URL is required", {"connectorId": self.id})
        self.endpoint_url = config.get("endpointUrl") or self._endpoint_from_wsdl(self.wsdl_url)
        self.namespace = config.get("namespace")
        self.headers = {"Content-Type": "text/xml; charset=utf-8", **(config.get("headers") or {})}
        if "timeout" in config:
            self.timeout = float(config["timeout"])
        await self.close()
        self._client = self._build_client(headers=self.headers)
        logger.info("SOAP client initialized", connector_id=self.id, endpoint=self.endpoint_url)

    @staticmethod
    def _endpoint_from_wsdl(wsdl_url: str) -> str:
        parsed = urlparse(wsdl_url)
        query = "" if parsed.query.lower() == "wsdl" else parsed.query
        return urlunparse(parsed._replace(query=query))

    async def validate(self) -> bool:
        if not await super().validate():
            return False
        if not self.wsdl_url:
            logger.warning("WSDL URL is required", connector_id=self.id)
            return False
        if self.protocol != Protocol.SOAP:
            logger.warning(
                "Protocol must be SOAP for SoapConnector",
                connector_id=self.id,
                protocol=self.protocol.value,
            )
            return False
        return urlparse(self.wsdl_url).scheme in ("http", "https")

    def build_envelope(self, action: str, payload: dict) -> bytes:
        ET.register_namespace("soapenv", SOAP_ENV_NS)
        envelope = ET.Element(f"{{{SOAP_ENV_NS}}}Envelope")
        ET.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Header")
        body = ET.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
        operation_tag = f"{{{self.namespace}}}{action}" if self.namespace else action
        operation = ET.SubElement(body, operation_tag)
        for key, value in (payload or {}).items():
            _to_element(operation, key, value)
        return ET.tostring(envelope, encoding="utf-8", xml_declaration=True)

    def parse_envelope(self, content: bytes) -> Any:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ExecutionError(f"Invalid SOAP response: {e}") from e
        body = root.find(f"{{{SOAP_ENV_NS}}}Body")
        if body is None or not list(body):
            raise ExecutionError("SOAP response has no Body content")
        first = list(body)[0]
        if _local_name(first.tag) == "Fault":
            fault = _from_element(first) or {}
            message = fault.get("faultstring") if isinstance(fault, dict) else fault
            raise ExecutionError(f"SOAP fault: {message}", details={"fault": fault})
        return _from_element(first)

    async def send_request(self, action: str, payload: Optional[dict] = None) -> Any:
        """Invoke one SOAP operation."""
        if self._client is None:
            raise ConfigurationError("SOAP client not initialized. Call configure() first.")
        if not action:
            raise ConfigurationError("SOAP action is required")

        soap_action = f"{self.namespace.rstrip('/')}/{action}" if self.namespace else action
        try:
            response = await self._client.post(
                self.endpoint_url,
                content=self.build_envelope(action, payload or {}),
                headers={"SOAPAction": f'"{soap_action}"'},
            )
        except httpx.HTTPError as e:
            logger.error("Failed to execute SOAP request", connector_id=self.id, action=action, error=str(e))
            raise ExecutionError(f"SOAP request failed: {e}", details={"action": action}) from e

        # Faults come back as HTTP 500 with a parseable envelope.
        if response.status_code >= 400 and b"Fault" not in response.content:
            raise ExecutionError(
                f"SOAP request failed: HTTP {response.status_code}",
                details={"action": action, "statusCode": response.status_code},
            )
        return self.parse_envelope(response.content)

    async def invoke(self, request: dict) -> Any:
        return await self.send_request(request.get("action"), request.get("payload"))
