"""Closed set of inbound updates understood by the reply engine.

Raw platform payloads are validated and narrowed here, at the ingress
boundary, so the rest of the engine never touches loosely-typed dicts.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from flowbot.logging_config import get_logger
from flowbot.models.conversation import ConversationKind
from flowbot.schemas.telegram import TelegramChat, TelegramMessage, TelegramUpdate

logger = get_logger("updates")

COMMAND_MARKER = "/"

CHAT_KIND_BY_TYPE = {
    "private": ConversationKind.DIRECT,
    "group": ConversationKind.GROUP,
    "supergroup": ConversationKind.GROUP,
    "channel": ConversationKind.CHANNEL,
}


class Sender(BaseModel):
    id: Optional[int] = None
    is_bot: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.username:
            return f"@{self.username}"
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or "Unknown"


class ChatRef(BaseModel):
    id: int
    kind: ConversationKind
    title: Optional[str] = None
    username: Optional[str] = None


class _MessageUpdateBase(BaseModel):
    update_id: Optional[int] = None
    message_id: int
    date: int
    chat: ChatRef
    sender: Sender
    text: str = ""


class CommandUpdate(_MessageUpdateBase):
    kind: Literal["command"] = "command"
    command: str
    args: str = ""


class TextUpdate(_MessageUpdateBase):
    kind: Literal["text"] = "text"


class CallbackUpdate(BaseModel):
    kind: Literal["callback"] = "callback"
    update_id: Optional[int] = None
    callback_id: str
    sender: Sender
    chat: Optional[ChatRef] = None
    message_id: Optional[int] = None
    data: Optional[str] = None


InboundUpdate = Annotated[Union[CommandUpdate, TextUpdate, CallbackUpdate], Field(discriminator="kind")]


def _chat_ref(chat: TelegramChat) -> ChatRef:
    return ChatRef(
        id=chat.id,
        kind=CHAT_KIND_BY_TYPE.get(chat.type, ConversationKind.DIRECT),
        title=chat.title,
        username=chat.username,
    )


def _sender(message: TelegramMessage) -> Sender:
    if message.from_user:
        return Sender(**message.from_user.model_dump())
    if message.sender_chat:
        return Sender(
            id=message.sender_chat.id,
            first_name=message.sender_chat.title,
            username=message.sender_chat.username,
        )
    return Sender(first_name=message.chat.first_name, last_name=message.chat.last_name)


def split_command(text: str) -> tuple[str, str]:
    """Split "/cmd@bot rest" into ("/cmd", "rest")."""
    parts = text.strip().split(maxsplit=1)
    if not parts:
        return "", ""
    command = parts[0].split("@", 1)[0].lower()
    rest = parts[1].strip() if len(parts) > 1 else ""
    return command, rest


def is_command(text: Optional[str]) -> bool:
    return bool(text) and text.startswith(COMMAND_MARKER)


def parse_update(raw: TelegramUpdate) -> Optional[Union[CommandUpdate, TextUpdate, CallbackUpdate]]:
    """Narrow a raw platform update. Returns None for update kinds the engine ignores."""
    if raw.callback_query:
        callback = raw.callback_query
        chat = _chat_ref(callback.message.chat) if callback.message else None
        return CallbackUpdate(
            update_id=raw.update_id,
            callback_id=callback.id,
            sender=Sender(**callback.from_user.model_dump()),
            chat=chat,
            message_id=callback.message.message_id if callback.message else None,
            data=callback.data,
        )

    message = raw.message
    if message is None:
        return None

    text = message.text if message.text is not None else (message.caption or "")
    common = {
        "update_id": raw.update_id,
        "message_id": message.message_id,
        "date": message.date,
        "chat": _chat_ref(message.chat),
        "sender": _sender(message),
        "text": text,
    }
    if is_command(text):
        command, args = split_command(text)
        return CommandUpdate(command=command, args=args, **common)
    return TextUpdate(**common)


def parse_update_payload(payload: dict) -> Optional[Union[CommandUpdate, TextUpdate, CallbackUpdate]]:
    """Validate a pushed JSON payload. Invalid payloads are logged and dropped."""
    try:
        raw = TelegramUpdate(**payload)
    except (ValidationError, TypeError) as e:
        logger.warning(
            "Rejected malformed update payload",
            extra={"context": {"error": str(e), "update_id": payload.get("update_id")}},
        )
        return None
    return parse_update(raw)

