import uuid
from enum import Enum

from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from flowbot.database import Base


class ConversationKind(str, Enum):
    DIRECT = "direct"
    GROUP = "group"
    CHANNEL = "channel"


class Conversation(Base):
    __tablename__ = "telegram_conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    platform_chat_id = Column(Text, nullable=False, unique=True)
    kind = Column(Text, nullable=False, default=ConversationKind.DIRECT.value)  # direct, group, channel
    title = Column(Text)
    username = Column(Text)
    first_name = Column(Text)
    last_name = Column(Text)
    language_code = Column(Text)
    is_bot = Column(Boolean, default=False)
    last_update_id = Column(BigInteger)
    last_platform_message_id = Column(BigInteger)
    last_message_at = Column(DateTime(timezone=True))
    last_message_preview = Column(Text)
    message_count = Column(Integer, nullable=False, default=0)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    messages = relationship("Message", back_populates="conversation")

    @property
    def display_name(self) -> str:
        if self.title:
            return self.title
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.username or f"Chat {self.platform_chat_id}"
