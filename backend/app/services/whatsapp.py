"""Outbound WhatsApp messaging used when agents reply to customers."""

from __future__ import annotations

import abc
import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx

LOGGER = logging.getLogger(__name__)

TRANSPORT_ENV = "WHATSAPP_TRANSPORT"
ACCESS_TOKEN_ENV = "WHATSAPP_ACCESS_TOKEN"
PHONE_NUMBER_ID_ENV = "WHATSAPP_PHONE_NUMBER_ID"
API_VERSION_ENV = "WHATSAPP_API_VERSION"
DEFAULT_API_VERSION = "v18.0"


class ConfigurationError(RuntimeError):
    """Raised when a WhatsApp client cannot be configured."""


class WhatsAppError(RuntimeError):
    """Raised when the provider cannot be reached."""


@dataclass
class DeliveryResult:
    """Outcome returned by a WhatsApp provider."""

    success: bool
    status_code: Optional[int] = None
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


def _normalize_recipient(recipient: str) -> str:
    recipient = recipient.strip()
    if recipient.startswith("whatsapp:"):
        recipient = recipient[len("whatsapp:"):]
    return recipient.lstrip("+")


class WhatsAppClient(abc.ABC):
    """Interface implemented by outbound WhatsApp providers."""

    channel: str

    @abc.abstractmethod
    def send_text(self, *, recipient: str, body: str) -> DeliveryResult:
        """Send a text message and return the delivery result."""


class ConsoleWhatsAppClient(WhatsAppClient):
    """Fallback client that logs messages instead of sending them."""

    channel = "console"

    def __init__(self) -> None:
        self.records: list[dict[str, str]] = []

    def send_text(self, *, recipient: str, body: str) -> DeliveryResult:
        self.records.append({"recipient": recipient, "body": body})
        LOGGER.info("[console] WhatsApp message to %s: %s", recipient, body.replace("\n", " "))
        return DeliveryResult(
            success=True,
            status_code=200,
            provider_message_id=f"console-{len(self.records)}",
        )


class CloudApiWhatsAppClient(WhatsAppClient):
    """Send messages through the WhatsApp Business Cloud API."""

    channel = "whatsapp"
    base_url = "https://graph.facebook.com"

    def __init__(
        self,
        *,
        access_token: str | None,
        phone_number_id: str | None,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 10.0,
    ) -> None:
        if not access_token:
            raise ConfigurationError(f"{ACCESS_TOKEN_ENV} is required to send WhatsApp messages")
        if not phone_number_id:
            raise ConfigurationError(f"{PHONE_NUMBER_ID_ENV} is required to send WhatsApp messages")
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.api_version}/{self.phone_number_id}/messages"

    def send_text(self, *, recipient: str, body: str) -> DeliveryResult:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": _normalize_recipient(recipient),
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            response = httpx.post(
                self.endpoint, headers=headers, json=payload, timeout=self.timeout
            )
        except httpx.HTTPError as exc:
            raise WhatsAppError(f"Network error contacting WhatsApp: {exc}") from exc

        if response.status_code >= 400:
            return DeliveryResult(
                success=False,
                status_code=response.status_code,
                error=response.text,
            )

        message_id = None
        try:
            messages = response.json().get("messages") or []
            if messages:
                message_id = messages[0].get("id")
        except ValueError:
            LOGGER.warning("WhatsApp response was not valid JSON: %s", response.text)
        return DeliveryResult(
            success=True,
            status_code=response.status_code,
            provider_message_id=message_id,
        )


def build_whatsapp_client_from_env(*, fallback_to_console: bool = True) -> WhatsAppClient:
    """Instantiate a WhatsApp client from environment variables."""

    transport = os.getenv(TRANSPORT_ENV, "auto").strip().lower()

    if transport == "console":
        return ConsoleWhatsAppClient()

    try:
        return CloudApiWhatsAppClient(
            access_token=os.getenv(ACCESS_TOKEN_ENV),
            phone_number_id=os.getenv(PHONE_NUMBER_ID_ENV),
            api_version=os.getenv(API_VERSION_ENV, DEFAULT_API_VERSION),
        )
    except ConfigurationError as exc:
        if transport == "cloud" or not fallback_to_console:
            raise
        LOGGER.warning("%s; messages will be logged to the console", exc)
        return ConsoleWhatsAppClient()


_client: Optional[WhatsAppClient] = None


def get_whatsapp_client() -> WhatsAppClient:
    """FastAPI dependency returning the process-wide WhatsApp client."""

    global _client
    if _client is None:
        _client = build_whatsapp_client_from_env()
    return _client
