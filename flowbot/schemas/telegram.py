"""Bot API objects as received from Telegram and the options sent back."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _BotApiObject(BaseModel):
    # Telegram adds fields over time; unknown ones are ignored.
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TelegramUser(_BotApiObject):
    id: int
    is_bot: bool = False
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None


class TelegramChat(_BotApiObject):
    id: int
    type: str
    title: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class TelegramMessage(_BotApiObject):
    message_id: int
    date: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    sender_chat: Optional[TelegramChat] = None
    text: Optional[str] = None
    caption: Optional[str] = None


class TelegramCallbackQuery(_BotApiObject):
    id: str
    from_user: TelegramUser = Field(alias="from")
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None


class TelegramUpdate(_BotApiObject):
    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


class BotIdentity(BaseModel):
    """Result of getMe."""

    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None

    @property
    def handle(self) -> str:
        return f"@{self.username}" if self.username else str(self.id)


class SentMessage(BaseModel):
    message_id: int
    chat_id: int


class SendOptions(BaseModel):
    """Optional sendMessage parameters; unset ones are left out of the request."""

    parse_mode: Optional[str] = None
    disable_web_page_preview: Optional[bool] = None
    reply_markup: Optional[dict] = None
    reply_to_message_id: Optional[int] = None

    def as_payload(self) -> dict:
        return self.model_dump(exclude_none=True)


class TelegramWebhookResponse(BaseModel):
    ok: bool
    message: Optional[str] = None
