from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from flowbot.logging_config import get_logger
from flowbot.models import BotSettings
from flowbot.schemas.bot_config import BotConfiguration

logger = get_logger("settings_service")

SETTINGS_ROW_ID = 1


def _get_row(db: Session) -> Optional[BotSettings]:
    return db.query(BotSettings).filter(BotSettings.id == SETTINGS_ROW_ID).first()


def load_bot_configuration(db: Session) -> Optional[BotConfiguration]:
    """Stored configuration, or None when nothing valid is stored."""
    row = _get_row(db)
    if row is None or not row.payload:
        return None
    try:
        return BotConfiguration.model_validate(row.payload)
    except ValidationError as e:
        logger.error("Stored bot configuration is invalid", extra={"context": {"error": str(e)}})
        return None


def save_bot_configuration(db: Session, config: BotConfiguration) -> BotSettings:
    """Replace the stored configuration as a whole."""
    now = datetime.now(timezone.utc)
    row = _get_row(db)
    if row is None:
        row = BotSettings(id=SETTINGS_ROW_ID, payload=config.model_dump(mode="json"), updated_at=now)
        db.add(row)
    else:
        row.payload = config.model_dump(mode="json")
        row.updated_at = now
    db.flush()
    return row


def mark_tested(db: Session) -> None:
    row = _get_row(db)
    if row is not None:
        row.last_tested = datetime.now(timezone.utc)
        db.flush()
