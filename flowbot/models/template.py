import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Text, Uuid

from flowbot.database import Base


class Template(Base):
    __tablename__ = "telegram_templates"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False, unique=True)
    type = Column(Text, nullable=False, default="message")  # message, command, inline_keyboard
    command = Column(Text)  # only for type=command, e.g. /start
    category = Column(Text, nullable=False)  # welcome, support, info, marketing, automation
    language = Column(Text, default="it")
    content = Column(Text, nullable=False)
    parse_mode = Column(Text, default="HTML")
    disable_web_page_preview = Column(Boolean, default=False)
    inline_keyboard = Column(JSON)
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
