"""Tests for the outbound message channel."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from app.infra.notifications import MessageChannel


class TestMessageChannel:
    """Test Twilio message sending."""

    @pytest.fixture
    def channel(self):
        return MessageChannel(
            account_sid="AC123",
            auth_token="secret",
            from_number="whatsapp:+14155238886",
            base_url="https://api.example.test",
            timeout=5.0,
        )

    @pytest.fixture
    def mock_httpx_client(self):
        return AsyncMock()

    @pytest.mark.asyncio
    async def test_send(self, channel, mock_httpx_client):
        """Test a message is posted with the recipient's channel prefix."""
        mock_response = MagicMock()
        mock_response.status_code = 201
        mock_response.raise_for_status = MagicMock()
        mock_httpx_client.post = AsyncMock(return_value=mock_response)
        channel._client = mock_httpx_client

        assert await channel.send("+353871234567", "✅ Booking confirmed!")

        args, kwargs = mock_httpx_client.post.call_args
        assert args[0] == "/Accounts/AC123/Messages.json"
        assert kwargs["data"] == {
            "From": "whatsapp:+14155238886",
            "To": "whatsapp:+353871234567",
            "Body": "✅ Booking confirmed!",
        }

    @pytest.mark.asyncio
    async def test_send_failure(self, channel, mock_httpx_client):
        """Test provider errors are reported, not raised."""
        mock_response = MagicMock()
        mock_response.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError(
                "400 Bad Request", request=MagicMock(), response=MagicMock()
            )
        )
        mock_httpx_client.post = AsyncMock(return_value=mock_response)
        channel._client = mock_httpx_client

        assert not await channel.send("+353871234567", "hi")

    @pytest.mark.asyncio
    async def test_network_error(self, channel, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        channel._client = mock_httpx_client

        assert not await channel.send("+353871234567", "hi")

    @pytest.mark.asyncio
    async def test_disabled_without_credentials(self):
        channel = MessageChannel(account_sid="", auth_token="", from_number="")

        assert not channel.enabled
        assert not await channel.send("+353871234567", "hi")
        assert channel._client is None

    @pytest.mark.asyncio
    async def test_empty_text_not_sent(self, channel, mock_httpx_client):
        channel._client = mock_httpx_client
        assert not await channel.send("+353871234567", "")
        mock_httpx_client.post.assert_not_called()

    def test_sms_sender_keeps_plain_number(self):
        channel = MessageChannel(account_sid="AC1", auth_token="t", from_number="+14155238886")
        assert channel._address("+353871234567") == "+353871234567"
