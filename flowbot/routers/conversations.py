from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from flowbot.database import get_db
from flowbot.errors import DeliveryError
from flowbot.logging_config import get_logger
from flowbot.models import Conversation, MessageDirection, MessageOrigin
from flowbot.routers.deps import get_engine
from flowbot.schemas.conversation import (
    ConversationOut,
    ConversationPage,
    MarkReadResponse,
    MessageOut,
    MessagePage,
    SendMessageRequest,
    SendMessageResponse,
)
from flowbot.schemas.telegram import SendOptions
from flowbot.services import conversation_service
from flowbot.services.bot_engine import BotEngine

logger = get_logger("conversations")

router = APIRouter(prefix="/telegram", tags=["conversations"])


def _get_or_404(db: Session, conversation_id: UUID) -> Conversation:
    conversation = conversation_service.get_conversation(db, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.get("/chats", response_model=ConversationPage)
def list_chats(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    items, total = conversation_service.list_conversations(db, limit=limit, offset=offset)
    return ConversationPage(
        items=[ConversationOut.model_validate(c) for c in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/chats/{conversation_id}/messages", response_model=MessagePage)
def list_chat_messages(
    conversation_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    _get_or_404(db, conversation_id)
    items, total = conversation_service.list_messages(db, conversation_id, limit=limit, offset=offset)
    return MessagePage(
        items=[MessageOut.model_validate(m) for m in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/chats/{conversation_id}/read", response_model=MarkReadResponse)
def mark_chat_read(conversation_id: UUID, db: Session = Depends(get_db)):
    conversation = _get_or_404(db, conversation_id)
    updated = conversation_service.mark_conversation_read(db, conversation)
    db.commit()
    return MarkReadResponse(conversation_id=conversation.id, updated=updated)


@router.post("/send", response_model=SendMessageResponse)
async def send_message(
    request: SendMessageRequest,
    db: Session = Depends(get_db),
    engine: BotEngine = Depends(get_engine),
):
    """Operator reply to a chat. Recorded as a human outbound message."""
    if engine.client is None:
        raise HTTPException(status_code=503, detail="Telegram bot is not active")

    options = SendOptions(
        parse_mode=request.parse_mode,
        disable_web_page_preview=request.disable_web_page_preview,
        reply_markup=request.reply_markup,
    )
    try:
        sent = await engine.client.send_text(request.chat_id, request.text, options)
    except DeliveryError as e:
        logger.error("Manual send failed", extra={"context": {"chat_id": request.chat_id, "error": str(e)}})
        raise HTTPException(status_code=502, detail=str(e))

    conversation = conversation_service.get_by_platform_chat_id(db, request.chat_id)
    if conversation is not None:
        conversation_service.append_message(
            db,
            conversation,
            sent.message_id,
            MessageDirection.OUTBOUND,
            MessageOrigin.HUMAN,
            request.text,
            sender="operator",
        )
        db.commit()
    return SendMessageResponse(success=True, message_id=sent.message_id)
