"""Per-update reply pipeline shared by webhook and polling ingestion.

Inbound message -> conversation store -> staff fan-out -> command router or
business-hours gate -> reply sent and recorded. Store and notification
failures are logged and never stop the reply; the reply itself is
best-effort.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flowbot.database import SessionLocal
from flowbot.errors import DeliveryError, UpstreamError
from flowbot.logging_config import get_logger
from flowbot.models import Conversation, MessageDirection, MessageOrigin
from flowbot.schemas.bot_config import BotConfiguration
from flowbot.schemas.telegram import SendOptions
from flowbot.schemas.updates import CallbackUpdate, CommandUpdate, TextUpdate
from flowbot.services import conversation_service, notification_service, template_service
from flowbot.services.ai_responder import FALLBACK_REPLY, AIResponder, session_id_for
from flowbot.services.business_hours import ReplyRoute, decide_route
from flowbot.services.command_router import Reply, route_command, template_reply
from flowbot.services.telegram_client import TelegramClient

logger = get_logger("update_handler")

AUTO_REPLY_TEXT = """Hi! 👋 Thanks for contacting us.

Our team will get back to you as soon as possible.

In the meantime you can:
• Use /help to see the commands
• Describe your problem in detail
• Check our FAQ"""

OUT_OF_HOURS_TEXT = """🕐 We are currently closed.

<b>Support hours:</b>
{{business_hours_start}} - {{business_hours_end}}
{{business_days}}

We will answer as soon as possible!
Meanwhile you can use the available commands or describe your problem."""

MessageUpdate = Union[CommandUpdate, TextUpdate]


@dataclass
class HandleOutcome:
    stored: bool = False
    duplicate: bool = False
    route: Optional[str] = None
    replied: bool = False


def build_variables(update: MessageUpdate, config: BotConfiguration) -> dict[str, str]:
    hours = config.business_hours
    return {
        "first_name": update.sender.first_name or "",
        "last_name": update.sender.last_name or "",
        "username": update.sender.username or "",
        "chat_id": str(update.chat.id),
        "bot_name": config.bot_username,
        "business_hours_start": hours.start,
        "business_hours_end": hours.end,
        "business_days": ", ".join(day.capitalize() for day in hours.days),
    }


class UpdateHandler:
    def __init__(
        self,
        client: TelegramClient,
        config: BotConfiguration,
        responder: Optional[AIResponder] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.client = client
        self.config = config
        self.responder = responder or AIResponder()
        self._session_factory = session_factory
        self._clock = clock

    async def handle(self, update: Optional[Union[CommandUpdate, TextUpdate, CallbackUpdate]]) -> HandleOutcome:
        if update is None:
            return HandleOutcome()
        if isinstance(update, CallbackUpdate):
            await self._answer_callback(update)
            return HandleOutcome()

        db = self._session_factory()
        try:
            return await self._handle_message(db, update)
        finally:
            db.close()

    async def _handle_message(self, db: Session, update: MessageUpdate) -> HandleOutcome:
        outcome = HandleOutcome()
        context = {"chat_id": update.chat.id, "message_id": update.message_id, "update_id": update.update_id}

        conversation: Optional[Conversation] = None
        try:
            conversation = conversation_service.upsert_conversation(db, update.chat, update.sender, update.update_id)
            _, created = conversation_service.append_message(
                db,
                conversation,
                update.message_id,
                MessageDirection.INBOUND,
                MessageOrigin.HUMAN,
                update.text,
                sender=update.sender.display_name,
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            conversation = None
            logger.error("Failed to store inbound message", extra={"context": {**context, "error": str(e)}})
        else:
            if not created:
                logger.info("Duplicate delivery ignored", extra={"context": context})
                outcome.duplicate = True
                return outcome
            outcome.stored = True

        if conversation is not None and isinstance(update, TextUpdate) and update.text.strip():
            self._fan_out(db, conversation, update)

        if update.sender.is_bot or not update.text.strip():
            return outcome

        reply = await self._build_reply(db, update, outcome)
        if reply is not None:
            outcome.replied = await self._deliver(db, conversation, update.chat.id, reply)
        return outcome

    def _fan_out(self, db: Session, conversation: Conversation, update: TextUpdate) -> None:
        try:
            notification_service.notify_new_message(db, conversation, update.sender.display_name, update.text)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                "Staff notification failed",
                extra={"context": {"chat_id": update.chat.id, "error": str(e)}},
            )

    async def _build_reply(self, db: Session, update: MessageUpdate, outcome: HandleOutcome) -> Optional[Reply]:
        variables = build_variables(update, self.config)
        if isinstance(update, CommandUpdate):
            outcome.route = "command"
            return route_command(db, update, variables)

        route = decide_route(self._clock(), self.config)
        outcome.route = route.value
        if route == ReplyRoute.OUT_OF_HOURS:
            if self.config.out_of_hours_message:
                return Reply(text=template_service.render(self.config.out_of_hours_message, variables))
            return self._stored_or_builtin(db, template_service.OUT_OF_HOURS_TEMPLATE, OUT_OF_HOURS_TEXT, variables)
        if route == ReplyRoute.AUTO_REPLY:
            return self._stored_or_builtin(db, template_service.AUTO_REPLY_TEMPLATE, AUTO_REPLY_TEXT, variables)
        if route == ReplyRoute.AI:
            return await self._ai_reply(update)
        return None

    def _stored_or_builtin(self, db: Session, name: str, builtin: str, variables: dict[str, str]) -> Reply:
        template = template_service.get_active_by_name(db, name)
        if template is not None:
            return template_reply(template, variables)
        text = template_service.render_for_parse_mode(builtin, variables, "HTML")
        return Reply(text=text, options=SendOptions(parse_mode="HTML"))

    async def _ai_reply(self, update: TextUpdate) -> Reply:
        session_id = session_id_for(update.chat.id, update.message_id)
        try:
            completion = await self.responder.complete(
                session_id,
                update.text,
                {"channel": "telegram", "chat_id": update.chat.id, "source": "telegram_bot"},
                model=self.config.ai_model,
                system_prompt=self.config.ai_system_prompt,
            )
        except UpstreamError as e:
            logger.warning(
                "AI reply unavailable, sending fallback",
                extra={"context": {"session_id": session_id, "error": str(e)}},
            )
            return Reply(text=FALLBACK_REPLY)
        return Reply(text=completion.text, origin=MessageOrigin.AI)

    async def _deliver(self, db: Session, conversation: Optional[Conversation], chat_id: int, reply: Reply) -> bool:
        try:
            sent = await self.client.send_text(chat_id, reply.text, reply.options)
        except DeliveryError as e:
            logger.error(
                "Reply delivery failed",
                extra={"context": {"chat_id": chat_id, "error_code": e.error_code, "error": str(e)}},
            )
            return False

        if conversation is None:
            return True
        sender = f"{self.config.bot_username} (AI)" if reply.origin == MessageOrigin.AI else self.config.bot_username
        try:
            conversation_service.append_message(
                db,
                conversation,
                sent.message_id,
                MessageDirection.OUTBOUND,
                reply.origin,
                reply.text,
                sender=sender,
            )
            if reply.template is not None:
                template_service.record_usage(db, reply.template)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to store outbound message", extra={"context": {"chat_id": chat_id, "error": str(e)}})
        return True

    async def _answer_callback(self, update: CallbackUpdate) -> None:
        logger.info(
            "Callback query received",
            extra={"context": {"callback_id": update.callback_id, "data": update.data}},
        )
        try:
            await self.client.answer_callback_query(update.callback_id)
        except DeliveryError as e:
            logger.warning("Failed to answer callback query", extra={"context": {"error": str(e)}})
