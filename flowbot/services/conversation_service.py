"""Conversation store: chats and their messages.

Inbound deliveries are at-least-once, so appending a message is idempotent
on (conversation, platform message id).
"""

from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flowbot.logging_config import get_logger
from flowbot.models import Conversation, ConversationKind, Message, MessageDirection, MessageOrigin, MessageStatus
from flowbot.schemas.updates import ChatRef, Sender

logger = get_logger("conversation_service")

PREVIEW_CHARS = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_conversation(db: Session, conversation_id: UUID) -> Optional[Conversation]:
    return db.query(Conversation).filter(Conversation.id == conversation_id).first()


def get_by_platform_chat_id(db: Session, platform_chat_id) -> Optional[Conversation]:
    return db.query(Conversation).filter(Conversation.platform_chat_id == str(platform_chat_id)).first()


def upsert_conversation(
    db: Session,
    chat: ChatRef,
    sender: Optional[Sender] = None,
    update_id: Optional[int] = None,
) -> Conversation:
    """Find the conversation for a chat or create it; refresh mutable profile fields."""
    conversation = get_by_platform_chat_id(db, chat.id)
    now = _now()
    is_direct = chat.kind == ConversationKind.DIRECT

    if conversation is None:
        conversation = Conversation(
            platform_chat_id=str(chat.id),
            kind=chat.kind.value,
            message_count=0,
            tags=[],
            created_at=now,
            updated_at=now,
        )
        db.add(conversation)
        logger.info("New conversation", extra={"context": {"chat_id": chat.id, "kind": chat.kind.value}})

    if chat.title:
        conversation.title = chat.title
    # Profile fields follow the remote user only for one-to-one chats.
    if is_direct and sender is not None:
        conversation.first_name = sender.first_name or conversation.first_name
        conversation.last_name = sender.last_name or conversation.last_name
        conversation.username = sender.username or conversation.username
        conversation.language_code = sender.language_code or conversation.language_code
        conversation.is_bot = sender.is_bot
    elif chat.username:
        conversation.username = chat.username
    if update_id is not None and (conversation.last_update_id or 0) < update_id:
        conversation.last_update_id = update_id
    conversation.updated_at = now
    db.flush()
    return conversation


def find_message(db: Session, conversation_id: UUID, platform_message_id: int) -> Optional[Message]:
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id, Message.platform_message_id == platform_message_id)
        .first()
    )


def append_message(
    db: Session,
    conversation: Conversation,
    platform_message_id: Optional[int],
    direction: MessageDirection,
    origin: MessageOrigin,
    body: str,
    sender: Optional[str] = None,
) -> Tuple[Message, bool]:
    """Insert a message unless the platform id was already stored. Returns (message, created)."""
    if platform_message_id is not None:
        existing = find_message(db, conversation.id, platform_message_id)
        if existing is not None:
            return existing, False

    now = _now()
    message = Message(
        conversation_id=conversation.id,
        platform_message_id=platform_message_id,
        direction=direction.value,
        origin=origin.value,
        body=body,
        sender=sender,
        status=MessageStatus.DELIVERED.value,
        created_at=now,
    )
    try:
        with db.begin_nested():
            db.add(message)
    except IntegrityError:
        # A concurrent delivery of the same update won the insert.
        existing = find_message(db, conversation.id, platform_message_id)
        if existing is None:
            raise
        return existing, False

    conversation.message_count = (conversation.message_count or 0) + 1
    conversation.last_message_at = now
    conversation.last_message_preview = body[:PREVIEW_CHARS] if body else None
    if platform_message_id is not None:
        conversation.last_platform_message_id = platform_message_id
    conversation.updated_at = now
    db.flush()
    return message, True


def mark_conversation_read(db: Session, conversation: Conversation) -> int:
    """Move inbound delivered messages to read. Returns how many changed."""
    updated = (
        db.query(Message)
        .filter(
            Message.conversation_id == conversation.id,
            Message.direction == MessageDirection.INBOUND.value,
            Message.status == MessageStatus.DELIVERED.value,
        )
        .update({Message.status: MessageStatus.READ.value}, synchronize_session=False)
    )
    db.flush()
    return updated


def count_unread(db: Session, conversation_id: UUID) -> int:
    return (
        db.query(Message)
        .filter(
            Message.conversation_id == conversation_id,
            Message.direction == MessageDirection.INBOUND.value,
            Message.status == MessageStatus.DELIVERED.value,
        )
        .count()
    )


def list_conversations(db: Session, limit: int = 50, offset: int = 0) -> Tuple[list[Conversation], int]:
    query = db.query(Conversation)
    total = query.count()
    items = query.order_by(Conversation.created_at.asc()).offset(offset).limit(limit).all()
    return items, total


def list_messages(db: Session, conversation_id: UUID, limit: int = 50, offset: int = 0) -> Tuple[list[Message], int]:
    query = db.query(Message).filter(Message.conversation_id == conversation_id)
    total = query.count()
    items = query.order_by(Message.created_at.asc(), Message.id.asc()).offset(offset).limit(limit).all()
    return items, total
