"""
Message channel: outbound sends and inbound message dispatch.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import structlog

from debt_agent.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from debt_agent.core.config import Settings, get_settings
from debt_agent.core.exceptions import ChannelError
from debt_agent.core.retry import create_async_retry_decorator, get_channel_retry_config
from debt_agent.utils.phone import to_channel_address

logger = structlog.get_logger(__name__)

InboundHandler = Callable[[str, str, Dict[str, Any]], Awaitable[Any]]


class MessageChannel(ABC):
    """
    Abstract messaging channel.

    Addresses are opaque to callers; ``normalize`` turns a raw phone into
    the channel's address format. Inbound messages are delivered to a single
    registered handler.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._handler: Optional[InboundHandler] = None

    @abstractmethod
    async def send(self, address: str, text: str) -> str:
        """
        Send a text message.

        Returns:
            The channel's message id

        Raises:
            ChannelError: If the message could not be sent
        """
        ...

    @abstractmethod
    async def is_reachable(self, address: str) -> bool:
        ...

    def normalize(self, raw_phone: str) -> str:
        return to_channel_address(
            raw_phone,
            suffix=self.settings.channel_address_suffix,
            country_code=self.settings.default_country_code,
        )

    def register_handler(self, handler: InboundHandler) -> None:
        if self._handler is not None and self._handler is not handler:
            logger.warning("Replacing inbound message handler")
        self._handler = handler

    async def dispatch_inbound(self, address: str, text: str, raw: Optional[Dict[str, Any]] = None) -> Any:
        """
        Deliver an inbound message to the registered handler.

        Handler errors are logged and not re-raised so one bad message never
        stops the listener.
        """
        if self._handler is None:
            logger.warning("Inbound message dropped, no handler registered", address=address)
            return None
        try:
            return await self._handler(address, text, raw or {})
        except Exception as e:
            logger.error(
                "Inbound message handler failed",
                address=address,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None


class WhatsAppGatewayChannel(MessageChannel):
    """Channel backed by an HTTP WhatsApp gateway."""

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.service_name = "WhatsApp Gateway"
        self.base_url = self.settings.whatsapp_gateway_url.rstrip("/")
        self.timeout = self.settings.whatsapp_gateway_timeout

        self.circuit_breaker = CircuitBreaker(
            service_name=self.service_name,
            config=CircuitBreakerConfig(
                failure_threshold=self.settings.channel_failure_threshold,
                timeout=self.settings.circuit_breaker_timeout,
            ),
        )
        retry_decorator = create_async_retry_decorator(
            config=get_channel_retry_config(self.settings.channel_retry_attempts),
            service_name=self.service_name,
        )
        self._post_with_retry = retry_decorator(self._post)

    async def send(self, address: str, text: str) -> str:
        if not text or not text.strip():
            raise ChannelError("Message cannot be empty", address=address)
        return await self.circuit_breaker.call_async(self._send_internal, address, text)

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            return response

    async def _send_internal(self, address: str, text: str) -> str:
        url = f"{self.base_url}/messages/send"
        logger.info(
            "Sending message",
            service=self.service_name,
            address=address,
            message_length=len(text),
        )

        try:
            response = await self._post_with_retry(url, {"to": address, "message": text})
        except httpx.TimeoutException as e:
            # Not retried: the gateway may already have delivered the message
            logger.error("Timeout sending message", address=address, timeout=self.timeout, error=str(e))
            raise ChannelError(f"Request timeout after {self.timeout} seconds", address=address)
        except httpx.ConnectError as e:
            logger.error("Connection error to gateway", address=address, url=url, error=str(e))
            raise ChannelError(f"Connection error: {e}", address=address)
        except httpx.HTTPStatusError as e:
            logger.error(
                "HTTP error from gateway",
                address=address,
                status_code=e.response.status_code,
                error=str(e),
            )
            raise ChannelError(f"Gateway returned {e.response.status_code}", address=address)
        except httpx.HTTPError as e:
            logger.error("Unexpected error sending message", address=address, error=str(e))
            raise ChannelError(f"Unexpected error: {e}", address=address)

        data = response.json() if response.content else {}
        message_id = data.get("message_id") or data.get("id")
        if not message_id:
            message_id = f"msg-{datetime.now(timezone.utc).timestamp()}"
            logger.warning("No message id in gateway response, generated local id", generated_id=message_id)

        logger.info("Message sent", service=self.service_name, address=address, message_id=message_id)
        return message_id

    async def is_reachable(self, address: str) -> bool:
        """Ask the gateway whether the address is registered on the network."""
        url = f"{self.base_url}/contacts/{address}/exists"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
                response.raise_for_status()
                return bool(response.json().get("exists", False))
        except httpx.HTTPError as e:
            logger.warning("Reachability check failed", address=address, error=str(e))
            return False

    async def health_check(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/health")
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("Gateway health check failed", error=str(e))
            return False

    def get_status(self) -> Dict[str, Any]:
        return self.circuit_breaker.get_status()
