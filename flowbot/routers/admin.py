"""Admin API endpoints for the bot configuration and ingestion engine."""

import hmac
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from flowbot.config import settings
from flowbot.database import get_db
from flowbot.errors import AuthError, FlowbotError
from flowbot.logging_config import get_logger
from flowbot.models import BotSettings
from flowbot.routers.deps import get_engine
from flowbot.schemas.bot_config import BotConfiguration
from flowbot.schemas.engine import ConnectionTestResult, EngineMode, EngineStatus
from flowbot.services import settings_service
from flowbot.services.bot_engine import BotEngine

logger = get_logger("admin")

router = APIRouter(prefix="/admin/telegram", tags=["admin"])


# === SCHEMAS ===


class SettingsResponse(BaseModel):
    configured: bool
    settings: Optional[dict] = None
    last_tested: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SettingsUpdateResponse(BaseModel):
    saved: bool
    mode: EngineMode


class RestartResponse(BaseModel):
    mode: EngineMode


# === HELPERS ===


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid admin token")


async def _reconfigure(engine: BotEngine, config: Optional[BotConfiguration]) -> EngineMode:
    try:
        return await engine.reconfigure(config)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=f"Bot token rejected: {e}")
    except FlowbotError as e:
        raise HTTPException(status_code=502, detail=f"Telegram unavailable: {e}")


# === ENDPOINTS ===


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(
    x_admin_token: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    _require_admin_token(x_admin_token)
    config = settings_service.load_bot_configuration(db)
    if config is None:
        return SettingsResponse(configured=False)
    row = db.query(BotSettings).first()
    return SettingsResponse(
        configured=True,
        settings=config.redacted(),
        last_tested=row.last_tested if row else None,
        updated_at=row.updated_at if row else None,
    )


@router.put("/settings", response_model=SettingsUpdateResponse)
async def replace_settings(
    config: BotConfiguration,
    x_admin_token: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    engine: BotEngine = Depends(get_engine),
):
    """Replace the configuration as a whole and re-establish ingestion."""
    _require_admin_token(x_admin_token)
    settings_service.save_bot_configuration(db, config)
    db.commit()
    logger.info(
        "Bot configuration replaced",
        extra={"context": {"active": config.is_active, "webhook": bool(config.webhook_url)}},
    )
    mode = await _reconfigure(engine, config)
    return SettingsUpdateResponse(saved=True, mode=mode)


@router.post("/test", response_model=ConnectionTestResult)
async def test_connection(
    x_admin_token: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    engine: BotEngine = Depends(get_engine),
):
    _require_admin_token(x_admin_token)
    config = engine.config or settings_service.load_bot_configuration(db)
    result = await engine.test_connection(config)
    if result.success:
        settings_service.mark_tested(db)
        db.commit()
    return result


@router.post("/restart", response_model=RestartResponse)
async def restart_ingestion(
    x_admin_token: Optional[str] = Header(None),
    engine: BotEngine = Depends(get_engine),
):
    _require_admin_token(x_admin_token)
    mode = await _reconfigure(engine, engine.config)
    return RestartResponse(mode=mode)


@router.get("/status", response_model=EngineStatus)
async def engine_status(
    x_admin_token: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    engine: BotEngine = Depends(get_engine),
):
    _require_admin_token(x_admin_token)
    return engine.status(db)
