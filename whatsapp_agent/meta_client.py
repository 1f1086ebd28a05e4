from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from .config import Settings

logger = logging.getLogger("wabot.meta")

GRAPH_BASE_URL = "https://graph.facebook.com"
HTTP_TIMEOUT_SEC = 10.0


class DispatchFailure(Exception):
    """Raised when an outbound message could not be handed to the transport."""


class OutboundBlocked(DispatchFailure):
    """Raised for every send while the service runs in simulate-only mode."""


class MessageSender(Protocol):
    async def send_text(self, to: str, body: str) -> None:
        ...


class MetaSender:
    """Sends text messages through the WhatsApp Cloud API."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v20.0",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = f"{GRAPH_BASE_URL}/{api_version}/{phone_number_id}/messages"
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        self._client = client

    async def send_text(self, to: str, body: str) -> None:
        """Purpose: Deliver one text message to a WhatsApp recipient.
        Inputs/Outputs: Inputs are recipient phone and body text; no return value.
        Side Effects / State: One HTTPS POST to the Graph API; never retried.
        Dependencies: httpx.AsyncClient.
        Failure Modes: Transport errors and non-2xx responses raise DispatchFailure.
        If Removed: Customers never receive replies.
        Testing Notes: Use httpx.MockTransport to assert payload shape and error mapping.
        """
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload, headers=self._headers)
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SEC) as client:
                    response = await client.post(self._url, json=payload, headers=self._headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DispatchFailure(f"Meta send failed: {type(exc).__name__}") from exc
        if response.status_code >= 300:
            logger.error("meta send status=%s body=%s", response.status_code, response.text[:200])
            raise DispatchFailure(f"Meta API error: {response.status_code}")


class BlockedSender:
    """Sender used in simulate-only mode; refuses every outbound call."""

    async def send_text(self, to: str, body: str) -> None:
        raise OutboundBlocked("Outbound Meta call blocked: SIMULATE_ONLY=true")


def build_sender(settings: Settings) -> MessageSender:
    if settings.simulate_only:
        return BlockedSender()
    return MetaSender(
        access_token=settings.meta_access_token,
        phone_number_id=settings.meta_phone_number_id,
        api_version=settings.meta_graph_api_version,
    )
