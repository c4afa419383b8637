from typing import Optional

import httpx
from pydantic import ValidationError

from flowbot.config import settings
from flowbot.errors import AuthError, DeliveryError, NetworkError
from flowbot.logging_config import get_logger
from flowbot.schemas.telegram import BotIdentity, SendOptions, SentMessage, TelegramUpdate

logger = get_logger("telegram_client")

AUTH_ERROR_CODES = {401, 404}


class TelegramApiError(Exception):
    """Non-ok response from the Bot API."""

    def __init__(self, method: str, error_code: Optional[int], description: Optional[str]):
        self.method = method
        self.error_code = error_code
        self.description = description
        super().__init__(f"Telegram {method} failed: {error_code} {description}")

    @property
    def is_auth_failure(self) -> bool:
        return self.error_code in AUTH_ERROR_CODES


class TelegramClient:
    """Thin async wrapper over the Telegram Bot API. No retries, no business logic."""

    def __init__(
        self,
        bot_token: str,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.bot_token = bot_token
        self.base_url = f"{(api_base or settings.telegram_api_base).rstrip('/')}/bot{bot_token}"
        self.timeout = timeout if timeout is not None else settings.telegram_request_timeout

    async def _make_request(self, method: str, data: Optional[dict] = None, timeout: Optional[float] = None) -> dict:
        """POST a Bot API method and return its `result`."""
        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=timeout or self.timeout) as client:
                response = await client.post(url, json=data or {})
        except httpx.HTTPError as e:
            raise NetworkError(f"Telegram {method} transport error: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise NetworkError(f"Telegram {method} returned non-JSON status {response.status_code}") from e

        if not payload.get("ok"):
            raise TelegramApiError(method, payload.get("error_code", response.status_code), payload.get("description"))
        return payload.get("result")

    async def fetch_updates(
        self,
        since_offset: int,
        limit: int = 100,
        timeout: int = 0,
        allowed_updates: Optional[list[str]] = None,
    ) -> list[TelegramUpdate]:
        """Long-poll for updates with identifier >= since_offset. Empty list is not an error."""
        data = {"offset": since_offset, "limit": limit, "timeout": timeout}
        if allowed_updates:
            data["allowed_updates"] = allowed_updates
        try:
            result = await self._make_request("getUpdates", data, timeout=self.timeout + timeout)
        except TelegramApiError as e:
            if e.is_auth_failure:
                raise AuthError(f"Bot token rejected: {e.description}") from e
            raise NetworkError(str(e)) from e

        updates: list[TelegramUpdate] = []
        for item in result or []:
            try:
                updates.append(TelegramUpdate(**item))
            except (ValidationError, TypeError) as e:
                # Keep the offset moving past payloads we cannot model.
                update_id = item.get("update_id") if isinstance(item, dict) else None
                logger.warning(
                    "Skipping malformed update",
                    extra={"context": {"update_id": update_id, "error": str(e)}},
                )
                if isinstance(update_id, int):
                    updates.append(TelegramUpdate(update_id=update_id))
        return updates

    async def send_text(self, chat_id: int | str, text: str, options: Optional[SendOptions] = None) -> SentMessage:
        data = {"chat_id": chat_id, "text": text}
        if options:
            data.update(options.as_payload())
        try:
            result = await self._make_request("sendMessage", data)
        except TelegramApiError as e:
            raise DeliveryError(str(e), error_code=e.error_code, description=e.description) from e
        except NetworkError as e:
            raise DeliveryError(str(e)) from e
        return SentMessage(message_id=result["message_id"], chat_id=result["chat"]["id"])

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        data = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
        try:
            await self._make_request("answerCallbackQuery", data)
        except TelegramApiError as e:
            raise DeliveryError(str(e), error_code=e.error_code, description=e.description) from e
        except NetworkError as e:
            raise DeliveryError(str(e)) from e

    async def register_webhook(
        self,
        url: str,
        secret: Optional[str] = None,
        allowed_updates: Optional[list[str]] = None,
    ) -> None:
        data = {"url": url}
        if secret:
            data["secret_token"] = secret
        if allowed_updates:
            data["allowed_updates"] = allowed_updates
        await self._admin_call("setWebhook", data)
        logger.info("Webhook registered", extra={"context": {"url": url}})

    async def delete_webhook(self) -> None:
        await self._admin_call("deleteWebhook", {"drop_pending_updates": False})

    async def get_identity(self) -> BotIdentity:
        try:
            result = await self._make_request("getMe")
        except TelegramApiError as e:
            if not e.is_auth_failure:
                raise NetworkError(str(e)) from e
            raise AuthError(f"Bot token rejected: {e.description}") from e
        return BotIdentity(**result)

    async def _admin_call(self, method: str, data: dict) -> None:
        try:
            await self._make_request(method, data)
        except TelegramApiError as e:
            if e.is_auth_failure:
                raise AuthError(f"Bot token rejected: {e.description}") from e
            raise NetworkError(str(e)) from e
