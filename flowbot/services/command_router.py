"""Command classification and built-in command replies."""

from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from sqlalchemy.orm import Session

from flowbot.logging_config import get_logger
from flowbot.models import MessageOrigin, Template
from flowbot.schemas.telegram import SendOptions
from flowbot.schemas.updates import CommandUpdate
from flowbot.services import template_service

logger = get_logger("command_router")


@dataclass
class Reply:
    text: str
    origin: MessageOrigin = MessageOrigin.TEMPLATE
    options: SendOptions = field(default_factory=SendOptions)
    template: Optional[Template] = None


WELCOME_TEXT = """Hi {{first_name}}! 👋

Welcome to EasyCashFlows support!

I am your digital assistant and I can help you with:
💰 Cash-flow management
📊 Financial analytics
📄 Electronic invoicing
🤖 AI assistance

Use /help to see every available command.

How can I help you today?"""

WELCOME_KEYBOARD = {
    "inline_keyboard": [
        [
            {"text": "💰 Cash flow", "callback_data": "cashflow"},
            {"text": "📊 Analytics", "callback_data": "analytics"},
        ],
        [
            {"text": "📄 Invoicing", "callback_data": "invoicing"},
            {"text": "🆘 Support", "callback_data": "support"},
        ],
    ]
}

HELP_TEXT = """<b>📋 Available commands</b>

/start - Start the conversation
/help - Show this message
/info - About this bot

You can also just write your question and we will help you! 😊"""

INFO_TEXT = """<b>ℹ️ {{bot_name}}</b>

<b>Type:</b> Business assistant bot

<b>🎯 Main features:</b>
• Real-time cash-flow management
• Automated analytics and reporting
• FatturaPA integration
• Multi-channel support
• Personalised AI assistance

<b>🔒 Privacy:</b>
Your data is protected under the GDPR."""

UNKNOWN_COMMAND_TEXT = "Command not recognized. Use /help to see the available commands."


def _welcome() -> Reply:
    return Reply(text=WELCOME_TEXT, options=SendOptions(parse_mode="HTML", reply_markup=WELCOME_KEYBOARD))


def _help() -> Reply:
    return Reply(text=HELP_TEXT, options=SendOptions(parse_mode="HTML"))


def _info() -> Reply:
    return Reply(text=INFO_TEXT, options=SendOptions(parse_mode="HTML"))


BUILTIN_COMMANDS: dict[str, Callable[[], Reply]] = {
    "/start": _welcome,
    "/help": _help,
    "/info": _info,
}


def template_reply(template: Template, variables: Mapping[str, str]) -> Reply:
    options = SendOptions(
        parse_mode=template.parse_mode or None,
        disable_web_page_preview=template.disable_web_page_preview or None,
    )
    if template.inline_keyboard:
        options.reply_markup = {"inline_keyboard": template.inline_keyboard}
    return Reply(
        text=template_service.render_for_parse_mode(template.content, variables, options.parse_mode),
        options=options,
        template=template,
    )


def route_command(db: Optional[Session], update: CommandUpdate, variables: Mapping[str, str]) -> Reply:
    """Reply for a command: stored command template, built-in, or 'not recognized'."""
    if db is not None:
        template = template_service.get_command_template(db, update.command)
        if template is not None:
            return template_reply(template, variables)

    builder = BUILTIN_COMMANDS.get(update.command)
    if builder is None:
        logger.info("Unrecognized command", extra={"context": {"command": update.command, "chat_id": update.chat.id}})
        return Reply(text=UNKNOWN_COMMAND_TEXT)

    reply = builder()
    reply.text = template_service.render_for_parse_mode(reply.text, variables, reply.options.parse_mode)
    return reply
