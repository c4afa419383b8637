from flowbot.schemas.bot_config import BotConfiguration, BusinessHours
from flowbot.schemas.updates import CallbackUpdate, CommandUpdate, InboundUpdate, TextUpdate, parse_update

__all__ = [
    "BotConfiguration",
    "BusinessHours",
    "CallbackUpdate",
    "CommandUpdate",
    "InboundUpdate",
    "TextUpdate",
    "parse_update",
]
