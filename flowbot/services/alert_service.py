"""Operator alerts delivered to a Telegram chat.

Alerts are best effort: a missing configuration or a failed request is
logged and reported through the return value, never raised.
"""

import html
from typing import Optional

import httpx

from flowbot.config import settings
from flowbot.logging_config import get_logger

logger = get_logger("alert_service")

LEVEL_ICONS = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    # Error strings from the platform may contain markup characters.
    lines = [f"{LEVEL_ICONS.get(level, '📢')} <b>{html.escape(level)}</b> flowbot", "", html.escape(message)]
    if context:
        details = "\n".join(f"{key}: {value}" for key, value in context.items())
        lines += ["", f"<pre>{html.escape(details)}</pre>"]
    return "\n".join(lines)


async def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Send an alert to the operator chat. Returns True if Telegram accepted it."""
    if not settings.alert_bot_token or not settings.alert_chat_id:
        logger.warning("Alert not configured", extra={"context": {"level": level, "alert": message}})
        return False

    url = f"{settings.telegram_api_base.rstrip('/')}/bot{settings.alert_bot_token}/sendMessage"
    payload = {
        "chat_id": settings.alert_chat_id,
        "text": format_alert(level, message, context),
        "parse_mode": "HTML",
    }
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(url, json=payload)
    except Exception as e:
        logger.error("Failed to send alert", extra={"context": {"level": level, "error": str(e)}})
        return False

    if response.status_code != 200:
        logger.error("Alert rejected by Telegram", extra={"context": {"status": response.status_code}})
        return False
    return True


async def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    return await send_alert("WARNING", message, context)


async def alert_error(message: str, context: Optional[dict] = None) -> bool:
    return await send_alert("ERROR", message, context)
