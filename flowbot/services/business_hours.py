"""Business-hours gate: a pure decision over wall-clock time and configuration."""

from datetime import datetime
from enum import Enum

from flowbot.schemas.bot_config import WEEKDAYS, BotConfiguration, BusinessHours


class ReplyRoute(str, Enum):
    OUT_OF_HOURS = "out_of_hours"
    AUTO_REPLY = "auto_reply"
    AI = "ai"
    NONE = "none"


def is_business_hours(now: datetime, hours: BusinessHours) -> bool:
    """Weekday in the configured set and time-of-day within [start, end]."""
    if not hours.enabled:
        return True
    if now.tzinfo is not None:
        now = now.astimezone(hours.zone)
    weekday = WEEKDAYS[now.weekday()]
    if weekday not in hours.days:
        return False
    current = now.time().replace(second=0, microsecond=0)
    return hours.start_time <= current <= hours.end_time


def decide_route(now: datetime, config: BotConfiguration) -> ReplyRoute:
    """Which automated reply, if any, a free-text message gets."""
    if not is_business_hours(now, config.business_hours):
        return ReplyRoute.OUT_OF_HOURS if config.out_of_hours_reply else ReplyRoute.NONE
    if config.enable_ai_responses:
        return ReplyRoute.AI
    if config.enable_auto_reply:
        return ReplyRoute.AUTO_REPLY
    return ReplyRoute.NONE
