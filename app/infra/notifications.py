"""
Outbound Message Channel

Sends conversation replies and reminders through the Twilio Messages REST
API. Delivery is fire-and-forget: failures are logged and reported as
False, never raised to the caller.
"""

import logging
from typing import Optional

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"


class MessageChannel:
    """
    HTTP client for the Twilio Messages API.

    Without credentials the channel only logs outgoing text, which is what
    local development runs with.
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.account_sid = account_sid if account_sid is not None else settings.twilio_account_sid
        self.auth_token = auth_token if auth_token is not None else settings.twilio_auth_token
        self.from_number = from_number if from_number is not None else settings.twilio_from_number
        self.base_url = base_url or settings.twilio_api_base
        self.timeout = timeout or settings.twilio_timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        """True when credentials and a sender are configured."""
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                auth=(self.account_sid, self.auth_token),
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _address(self, identity: str) -> str:
        """Match the recipient address scheme to the sender's."""
        if self.from_number.startswith(WHATSAPP_PREFIX) and not identity.startswith(WHATSAPP_PREFIX):
            return f"{WHATSAPP_PREFIX}{identity}"
        return identity

    async def send(self, identity: str, text: str) -> bool:
        """Send a text message.

        Args:
            identity: Recipient phone number (E.164, no channel prefix)
            text: Message body

        Returns:
            True if the provider accepted the message
        """
        if not text:
            return False

        if not self.enabled:
            logger.info(f"Outbound channel disabled, message to {identity} not sent:\n{text}")
            return False

        client = await self._get_client()

        try:
            response = await client.post(
                f"/Accounts/{self.account_sid}/Messages.json",
                data={
                    "From": self.from_number,
                    "To": self._address(identity),
                    "Body": text,
                },
            )
            response.raise_for_status()
            logger.debug(f"Message sent to {identity}")
            return True

        except httpx.HTTPError as e:
            logger.error(f"Failed to send message to {identity}: {e}")
            return False


# Singleton
_channel: Optional[MessageChannel] = None


def get_message_channel() -> MessageChannel:
    """Get singleton MessageChannel."""
    global _channel
    if _channel is None:
        _channel = MessageChannel()
    return _channel
