"""Tests for the webhook routes."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from app.api.routes.webhook import normalize_identity
from app.core.conversation.dispatch import DispatchResponse
from app.core.conversation.steps import ConversationStep
from app.core.session.models import SessionData
from app.main import app, validation_exception_handler


@pytest.fixture
def mock_dispatcher():
    dispatcher = MagicMock()
    dispatcher.process = AsyncMock(
        return_value=DispatchResponse(
            message="menu",
            identity="+353871234567",
            step="MAIN_MENU",
            delivered=True,
            processing_time_ms=1.5,
        )
    )
    return dispatcher


@pytest.fixture
def client(mock_dispatcher):
    with patch("app.api.routes.webhook.get_dispatcher", return_value=mock_dispatcher):
        yield TestClient(app)


class TestNormalizeIdentity:
    def test_strips_whatsapp_prefix(self):
        assert normalize_identity("whatsapp:+353871234567") == "+353871234567"

    def test_plain_number(self):
        assert normalize_identity(" +353871234567 ") == "+353871234567"


class TestWebhookRoutes:
    """Test inbound messages and session administration."""

    def test_receive_message(self, client, mock_dispatcher):
        """Test the gateway's form post always gets an acknowledgement."""
        response = client.post(
            "/webhook/message",
            data={"From": "whatsapp:+353871234567", "Body": "2"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "accepted"}
        mock_dispatcher.process.assert_awaited_once_with("+353871234567", "2")

    def test_extra_gateway_fields_ignored(self, client, mock_dispatcher):
        response = client.post(
            "/webhook/message",
            data={
                "From": "+353871234567",
                "Body": "hi",
                "MessageSid": "SM123",
                "NumMedia": "0",
            },
        )

        assert response.status_code == 200
        mock_dispatcher.process.assert_awaited_once_with("+353871234567", "hi")

    def test_missing_sender_still_accepted(self, client, mock_dispatcher):
        response = client.post("/webhook/message", data={"Body": "hi"})

        assert response.status_code == 200
        assert response.json() == {"status": "accepted"}
        mock_dispatcher.process.assert_not_awaited()

    def test_get_session(self, client, mock_dispatcher):
        mock_dispatcher.get_session = AsyncMock(
            return_value=SessionData(
                identity="+353871234567",
                step=ConversationStep.SELECT_SERVICE,
                context="ready",
                last_activity=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
            )
        )

        response = client.get("/webhook/sessions/+353871234567")

        assert response.status_code == 200
        data = response.json()
        assert data["step"] == "SELECT_SERVICE"
        assert data["context"] == "ready"

    def test_get_session_not_found(self, client, mock_dispatcher):
        mock_dispatcher.get_session = AsyncMock(return_value=None)

        response = client.get("/webhook/sessions/+353870000000")

        assert response.status_code == 404

    def test_reset_session(self, client, mock_dispatcher):
        mock_dispatcher.reset_session = AsyncMock(
            return_value=SessionData(identity="+353871234567")
        )

        response = client.delete("/webhook/sessions/whatsapp:+353871234567")

        assert response.status_code == 200
        assert response.json()["step"] == "MAIN_MENU"
        mock_dispatcher.reset_session.assert_awaited_once_with("+353871234567")


class TestValidationErrorHandler:
    """Test rejected requests are reported, not turned into server errors."""

    @pytest.mark.asyncio
    async def test_raw_body_in_errors_is_serialisable(self):
        request = Request({
            "type": "http",
            "method": "POST",
            "path": "/webhook/message",
            "headers": [],
            "query_string": b"",
        })
        exc = RequestValidationError([
            {
                "type": "model_attributes_type",
                "loc": ("body",),
                "msg": "Input should be a valid dictionary",
                "input": b"From=whatsapp%3A%2B353871234567&Body=2",
            }
        ])

        response = await validation_exception_handler(request, exc)

        assert response.status_code == 422
        payload = json.loads(response.body)
        assert payload["error"] == "Validation error"
        assert payload["detail"][0]["input"] == "From=whatsapp%3A%2B353871234567&Body=2"
