from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from flowbot.database import get_db
from flowbot.errors import DeliveryError
from flowbot.logging_config import get_logger
from flowbot.models import MessageDirection, MessageOrigin, Template
from flowbot.routers.deps import get_engine
from flowbot.schemas.conversation import SendMessageResponse
from flowbot.schemas.telegram import SendOptions
from flowbot.schemas.template import SendTemplateRequest, TemplateIn, TemplateOut
from flowbot.services import conversation_service, template_service
from flowbot.services.bot_engine import BotEngine

logger = get_logger("templates")

router = APIRouter(prefix="/telegram", tags=["templates"])


def _get_or_404(db: Session, template_id: UUID) -> Template:
    template = template_service.get_template(db, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


def _ensure_unique_name(db: Session, name: str, exclude_id: UUID | None = None) -> None:
    query = db.query(Template).filter(Template.name == name)
    if exclude_id is not None:
        query = query.filter(Template.id != exclude_id)
    if query.first() is not None:
        raise HTTPException(status_code=409, detail=f"Template '{name}' already exists")


@router.get("/templates", response_model=list[TemplateOut])
def list_templates(db: Session = Depends(get_db)):
    return [template_service.to_out(t) for t in template_service.list_templates(db)]


@router.post("/templates", response_model=TemplateOut, status_code=201)
def create_template(data: TemplateIn, db: Session = Depends(get_db)):
    _ensure_unique_name(db, data.name)
    template = template_service.create_template(db, data)
    db.commit()
    db.refresh(template)
    logger.info("Template created", extra={"context": {"template_id": str(template.id), "name": template.name}})
    return template_service.to_out(template)


@router.get("/templates/{template_id}", response_model=TemplateOut)
def get_template(template_id: UUID, db: Session = Depends(get_db)):
    return template_service.to_out(_get_or_404(db, template_id))


@router.put("/templates/{template_id}", response_model=TemplateOut)
def update_template(template_id: UUID, data: TemplateIn, db: Session = Depends(get_db)):
    template = _get_or_404(db, template_id)
    _ensure_unique_name(db, data.name, exclude_id=template.id)
    template_service.update_template(db, template, data)
    db.commit()
    db.refresh(template)
    return template_service.to_out(template)


@router.delete("/templates/{template_id}")
def delete_template(template_id: UUID, db: Session = Depends(get_db)):
    template = _get_or_404(db, template_id)
    template_service.delete_template(db, template)
    db.commit()
    logger.info("Template deleted", extra={"context": {"template_id": str(template_id)}})
    return {"success": True}


@router.post("/send-template", response_model=SendMessageResponse)
async def send_template(
    request: SendTemplateRequest,
    db: Session = Depends(get_db),
    engine: BotEngine = Depends(get_engine),
):
    """Render a stored template with the caller's variables and send it to a chat."""
    template = _get_or_404(db, request.template_id)
    if not template.is_active:
        raise HTTPException(status_code=400, detail="Template is not active")
    if engine.client is None:
        raise HTTPException(status_code=503, detail="Telegram bot is not active")

    missing = template_service.missing_variables(template.content, request.variables)
    if missing:
        logger.info(
            "Sending template with unresolved variables",
            extra={"context": {"template_id": str(template.id), "missing": missing}},
        )

    text = template_service.render(template.content, request.variables)
    options = SendOptions(
        parse_mode=template.parse_mode,
        disable_web_page_preview=template.disable_web_page_preview or None,
        reply_markup={"inline_keyboard": template.inline_keyboard} if template.inline_keyboard else None,
    )
    try:
        sent = await engine.client.send_text(request.chat_id, text, options)
    except DeliveryError as e:
        logger.error("Template send failed", extra={"context": {"chat_id": request.chat_id, "error": str(e)}})
        raise HTTPException(status_code=502, detail=str(e))

    template_service.record_usage(db, template)
    conversation = conversation_service.get_by_platform_chat_id(db, request.chat_id)
    if conversation is not None:
        conversation_service.append_message(
            db,
            conversation,
            sent.message_id,
            MessageDirection.OUTBOUND,
            MessageOrigin.TEMPLATE,
            text,
            sender=engine.config.bot_username if engine.config else None,
        )
    db.commit()
    return SendMessageResponse(success=True, message_id=sent.message_id)
