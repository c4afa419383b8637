from enum import Enum

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from flowbot.database import Base


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageOrigin(str, Enum):
    HUMAN = "human"
    TEMPLATE = "template"
    AI = "ai"


class MessageStatus(str, Enum):
    DELIVERED = "delivered"
    READ = "read"


class Message(Base):
    __tablename__ = "telegram_messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "platform_message_id", name="uq_telegram_messages_platform_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(Uuid, ForeignKey("telegram_conversations.id"), nullable=False)
    platform_message_id = Column(BigInteger)
    direction = Column(Text, nullable=False)  # inbound, outbound
    origin = Column(Text, nullable=False)  # human, template, ai
    body = Column(Text, nullable=False)
    sender = Column(Text)
    status = Column(Text, nullable=False, default=MessageStatus.DELIVERED.value)  # delivered, read
    created_at = Column(DateTime(timezone=True), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
