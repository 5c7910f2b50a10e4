"""Webhook connector, registered under the WebSocket protocol.

Outbound: ``send_event`` posts a JSON event to the webhook URL.
Inbound: ``process_event`` accepts ``data`` and ``status`` events and
hands them to listeners registered with ``on_event``.
"""

from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx
import structlog

from core.constants import WEBHOOK_EVENT_TYPES, Protocol
from core.exceptions import ConfigurationError, ExecutionError, ValidationError
from core.utils import utc_now
from integrations.base import BaseConnector

logger = structlog.get_logger(__name__)

EventListener = Callable[[dict], Awaitable[None]]


class WebhookConnector(BaseConnector):
    """Connector exchanging events with a webhook endpoint."""

    protocol = Protocol.WEBSOCKET

    def __init__(
        self,
        connector_id: str,
        name: str,
        webhook_url: str,
        headers: Optional[dict[str, str]] = None,
        protocol: Any = None,
        **kwargs,
    ):
        super().__init__(connector_id, name, protocol or Protocol.WEBSOCKET, **kwargs)
        self.webhook_url = webhook_url
        self.headers = dict(headers or {})
        self._listeners: dict[str, list[EventListener]] = {t: [] for t in WEBHOOK_EVENT_TYPES}

    async def configure(self, config: Optional[dict] = None) -> None:
        config = config or {}
        webhook_url = config.get("webhookUrl")
        headers = config.get("headers")
        if webhook_url is not None and not isinstance(webhook_url, str):
            raise ConfigurationError("Invalid webhook configuration", {"connectorId": self.id})
        if headers is not None and not isinstance(headers, dict):
            raise ConfigurationError("Invalid webhook configuration", {"connectorId": self.id})

        if webhook_url is not None:
            self.webhook_url = webhook_url
        if headers is not None:
            self.headers = dict(headers)
        await self.close()

    async def validate(self) -> bool:
        if not await super().validate():
            return False
        parsed = urlparse(self.webhook_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.warning("Invalid webhook URL format", connector_id=self.id, webhook_url=self.webhook_url)
            return False
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in self.headers.items()):
            logger.warning("Invalid webhook headers format", connector_id=self.id)
            return False
        return True

    def on_event(self, event_type: str, listener: EventListener) -> None:
        if event_type not in WEBHOOK_EVENT_TYPES:
            raise ConfigurationError(f"Unsupported event type: {event_type}")
        self._listeners[event_type].append(listener)

    async def process_event(self, event: dict) -> None:
        """Dispatch an inbound event to its listeners."""
        if not isinstance(event, dict) or event.get("type") not in WEBHOOK_EVENT_TYPES:
            raise ValidationError(
                "Invalid webhook event structure",
                details={"type": event.get("type") if isinstance(event, dict) else None},
            )
        logger.info(
            "Processing webhook event",
            connector_id=self.id,
            event_type=event["type"],
            timestamp=utc_now().isoformat(),
        )
        for listener in self._listeners[event["type"]]:
            await listener(event)

    async def send_event(self, event: dict) -> Any:
        """POST an event to the webhook URL and return the response body."""
        if self._client is None:
            self._client = self._build_client(headers=self.headers)
        try:
            response = await self._client.post(self.webhook_url, json=event)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Webhook delivery failed", connector_id=self.id, error=str(e))
            raise ExecutionError(
                f"Webhook delivery failed: {e}", details={"connectorId": self.id}
            ) from e
        if "json" in response.headers.get("content-type", ""):
            return response.json()
        return {"status_code": response.status_code}

    async def invoke(self, request: dict) -> Any:
        return await self.send_event(request.get("event", request))
