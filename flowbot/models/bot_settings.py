from sqlalchemy import JSON, Column, DateTime, Integer

from flowbot.database import Base


class BotSettings(Base):
    """Single-row store for the serialized bot configuration."""

    __tablename__ = "bot_settings"

    id = Column(Integer, primary_key=True)
    payload = Column(JSON, nullable=False)
    last_tested = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), nullable=False)
