"""Staff notifications for new inbound chat messages."""

from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from flowbot.config import settings
from flowbot.logging_config import get_logger
from flowbot.models import Conversation, Notification, StaffUser

logger = get_logger("notification_service")

NOTIFICATION_TYPE = "new_telegram"
NOTIFICATION_CATEGORY = "telegram"
NOTIFICATION_TITLE = "New Telegram message"


def preview(text: str, limit: Optional[int] = None) -> str:
    limit = limit or settings.notification_preview_chars
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def action_url(platform_chat_id: str) -> str:
    return f"/communications?tab=telegram&chat={platform_chat_id}"


def get_recipients(db: Session, roles: Optional[Iterable[str]] = None) -> list[StaffUser]:
    """Active staff whose role is one of `roles`, compared case-insensitively."""
    if roles is None:
        roles = settings.notification_role_set
    roles = {role.strip().lower() for role in roles if role and role.strip()}
    if not roles:
        return []
    return (
        db.query(StaffUser)
        .filter(StaffUser.is_active.is_(True), func.lower(func.trim(StaffUser.role)).in_(roles))
        .all()
    )


def notify_new_message(db: Session, conversation: Conversation, sender: str, body: str) -> int:
    """Create one notification per qualifying staff member. Returns how many were created.

    Each recipient gets its own savepoint; a failure for one is logged and
    the rest are still notified.
    """
    recipients = get_recipients(db)
    text = f"{sender}: {preview(body)}"
    created = 0
    for user in recipients:
        try:
            with db.begin_nested():
                db.add(
                    Notification(
                        user_id=user.id,
                        conversation_id=conversation.id,
                        type=NOTIFICATION_TYPE,
                        category=NOTIFICATION_CATEGORY,
                        title=NOTIFICATION_TITLE,
                        message=text,
                        sender=sender,
                        action_url=action_url(conversation.platform_chat_id),
                        is_read=False,
                        created_at=datetime.now(timezone.utc),
                    )
                )
            created += 1
        except Exception as e:
            logger.error(
                "Failed to notify staff member",
                extra={"context": {"user_id": str(user.id), "chat_id": conversation.platform_chat_id, "error": str(e)}},
            )
    if recipients:
        logger.info(
            "Staff notified",
            extra={"context": {"chat_id": conversation.platform_chat_id, "created": created, "recipients": len(recipients)}},
        )
    return created
