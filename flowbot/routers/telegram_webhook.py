from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request

from flowbot.errors import AuthError
from flowbot.logging_config import get_logger
from flowbot.routers.deps import get_engine
from flowbot.schemas.telegram import TelegramWebhookResponse
from flowbot.schemas.updates import parse_update_payload
from flowbot.services.bot_engine import BotEngine

logger = get_logger("telegram_webhook")

router = APIRouter()


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """Decode the pushed JSON body. Returns None when it is not a JSON object."""
    try:
        body = await request.json()
    except ValueError as e:
        logger.warning(f"Telegram webhook body is not JSON: {e}")
        return None
    return body if isinstance(body, dict) else None


@router.post("/telegram/webhook", response_model=TelegramWebhookResponse)
async def handle_telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_telegram_bot_api_secret_token: Optional[str] = Header(None),
    engine: BotEngine = Depends(get_engine),
):
    """
    Acknowledge a pushed update immediately and handle it in the background:
    - secret mismatch -> 401
    - anything else -> 200, so the platform keeps the webhook registered
    """
    try:
        engine.verify_webhook_secret(x_telegram_bot_api_secret_token)
    except AuthError:
        logger.warning("Rejected webhook call with invalid secret")
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    body = await parse_telegram_update(request)
    if body is None:
        return TelegramWebhookResponse(ok=False, message="Invalid telegram payload")

    if not engine.accepting_updates:
        logger.warning("Webhook update received but bot is not active", extra={"context": {"update_id": body.get("update_id")}})
        return TelegramWebhookResponse(ok=False, message="Bot not active")

    update = parse_update_payload(body)
    if update is None:
        return TelegramWebhookResponse(ok=True, message="No actionable content")

    background_tasks.add_task(engine.dispatch, update)
    return TelegramWebhookResponse(ok=True)
