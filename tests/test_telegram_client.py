import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import httpx
import pytest

from flowbot.errors import AuthError, DeliveryError, NetworkError
from flowbot.schemas.telegram import SendOptions
from flowbot.services.telegram_client import TelegramClient


def _mock_async_client(mock_client_class, payload=None, status_code=200, post_side_effect=None):
    mock_client = MagicMock()
    mock_client_class.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client_class.return_value.__aexit__ = AsyncMock(return_value=False)
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    mock_client.post = AsyncMock(return_value=response, side_effect=post_side_effect)
    return mock_client


@pytest.fixture
def client():
    return TelegramClient("123456:ABC", api_base="https://api.telegram.test", timeout=5)


class TestFetchUpdates:
    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_sends_offset_and_limit(self, mock_client_class, client):
        mock_client = _mock_async_client(
            mock_client_class,
            payload={
                "ok": True,
                "result": [
                    {
                        "update_id": 5,
                        "message": {"message_id": 1, "date": 1, "chat": {"id": 9, "type": "private"}, "text": "hi"},
                    }
                ],
            },
        )

        updates = asyncio.run(client.fetch_updates(5, limit=100, allowed_updates=["message"]))

        assert [u.update_id for u in updates] == [5]
        url = mock_client.post.call_args[0][0]
        assert url == "https://api.telegram.test/bot123456:ABC/getUpdates"
        body = mock_client.post.call_args[1]["json"]
        assert body == {"offset": 5, "limit": 100, "timeout": 0, "allowed_updates": ["message"]}

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_empty_result_is_not_an_error(self, mock_client_class, client):
        _mock_async_client(mock_client_class, payload={"ok": True, "result": []})
        assert asyncio.run(client.fetch_updates(1)) == []

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_malformed_item_keeps_offset(self, mock_client_class, client):
        _mock_async_client(
            mock_client_class,
            payload={"ok": True, "result": [{"update_id": 8, "message": {"message_id": "x"}}]},
        )

        updates = asyncio.run(client.fetch_updates(1))

        assert len(updates) == 1
        assert updates[0].update_id == 8
        assert updates[0].message is None

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_unauthorized_is_auth_error(self, mock_client_class, client):
        _mock_async_client(
            mock_client_class, status_code=401, payload={"ok": False, "error_code": 401, "description": "Unauthorized"}
        )
        with pytest.raises(AuthError):
            asyncio.run(client.fetch_updates(1))

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_conflict_is_network_error(self, mock_client_class, client):
        _mock_async_client(
            mock_client_class,
            status_code=409,
            payload={"ok": False, "error_code": 409, "description": "Conflict: webhook is active"},
        )
        with pytest.raises(NetworkError):
            asyncio.run(client.fetch_updates(1))

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_transport_error_is_network_error(self, mock_client_class, client):
        _mock_async_client(mock_client_class, post_side_effect=httpx.ConnectTimeout("timed out"))
        with pytest.raises(NetworkError):
            asyncio.run(client.fetch_updates(1))


class TestSendText:
    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_returns_message_id(self, mock_client_class, client):
        mock_client = _mock_async_client(
            mock_client_class, payload={"ok": True, "result": {"message_id": 321, "chat": {"id": 9}}}
        )

        sent = asyncio.run(client.send_text(9, "Hello", SendOptions(parse_mode="HTML")))

        assert sent.message_id == 321
        body = mock_client.post.call_args[1]["json"]
        assert body == {"chat_id": 9, "text": "Hello", "parse_mode": "HTML"}

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_rejection_is_delivery_error(self, mock_client_class, client):
        _mock_async_client(
            mock_client_class,
            status_code=403,
            payload={"ok": False, "error_code": 403, "description": "Forbidden: bot was blocked by the user"},
        )

        with pytest.raises(DeliveryError) as exc_info:
            asyncio.run(client.send_text(9, "Hello"))

        assert exc_info.value.error_code == 403

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_transport_error_is_delivery_error(self, mock_client_class, client):
        _mock_async_client(mock_client_class, post_side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(DeliveryError):
            asyncio.run(client.send_text(9, "Hello"))


class TestIdentityAndWebhook:
    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_get_identity(self, mock_client_class, client):
        _mock_async_client(
            mock_client_class,
            payload={"ok": True, "result": {"id": 123456, "is_bot": True, "first_name": "Easy", "username": "easyflowbot"}},
        )

        identity = asyncio.run(client.get_identity())

        assert identity.handle == "@easyflowbot"

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_get_identity_rejected(self, mock_client_class, client):
        _mock_async_client(
            mock_client_class, status_code=401, payload={"ok": False, "error_code": 401, "description": "Unauthorized"}
        )
        with pytest.raises(AuthError):
            asyncio.run(client.get_identity())

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    @pytest.mark.parametrize("status", [429, 502])
    def test_get_identity_server_error_is_network_error(self, mock_client_class, status, client):
        _mock_async_client(
            mock_client_class, status_code=status, payload={"ok": False, "error_code": status, "description": "Bad Gateway"}
        )
        with pytest.raises(NetworkError):
            asyncio.run(client.get_identity())

    @patch("flowbot.services.telegram_client.httpx.AsyncClient")
    def test_register_webhook_with_secret(self, mock_client_class, client):
        mock_client = _mock_async_client(mock_client_class, payload={"ok": True, "result": True})

        asyncio.run(client.register_webhook("https://example.com/telegram/webhook", "s3cret", ["message"]))

        body = mock_client.post.call_args[1]["json"]
        assert body["url"] == "https://example.com/telegram/webhook"
        assert body["secret_token"] == "s3cret"
        assert body["allowed_updates"] == ["message"]
