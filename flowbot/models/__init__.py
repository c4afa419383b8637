from flowbot.models.bot_settings import BotSettings
from flowbot.models.conversation import Conversation, ConversationKind
from flowbot.models.message import Message, MessageDirection, MessageOrigin, MessageStatus
from flowbot.models.notification import Notification
from flowbot.models.staff_user import StaffUser
from flowbot.models.template import Template

__all__ = [
    "BotSettings",
    "Conversation",
    "ConversationKind",
    "Message",
    "MessageDirection",
    "MessageOrigin",
    "MessageStatus",
    "Notification",
    "StaffUser",
    "Template",
]
