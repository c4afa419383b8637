import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, Uuid

from flowbot.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("staff_users.id"), nullable=False)
    conversation_id = Column(Uuid, ForeignKey("telegram_conversations.id"))
    type = Column(Text, nullable=False)  # new_telegram
    category = Column(Text, nullable=False, default="telegram")
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    sender = Column(Text)
    action_url = Column(Text)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
