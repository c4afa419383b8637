import os

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from flowbot.config import settings
from flowbot.database import SessionLocal, get_db, init_db
from flowbot.errors import FlowbotError
from flowbot.logging_config import get_logger, setup_logging
from flowbot.models import Conversation, Message, Notification, Template
from flowbot.routers import admin, conversations, telegram_webhook, templates
from flowbot.services.bot_engine import BotEngine
from flowbot.services.settings_service import load_bot_configuration

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Flowbot API",
    description="Telegram ingestion and reply engine",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(telegram_webhook.router)
app.include_router(admin.router)
app.include_router(templates.router)
app.include_router(conversations.router)

app.state.engine = BotEngine()


def _is_autostart_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.engine_autostart


@app.on_event("startup")
async def start_engine() -> None:
    init_db()
    if not _is_autostart_enabled():
        return
    db = SessionLocal()
    try:
        config = load_bot_configuration(db)
    finally:
        db.close()
    try:
        await app.state.engine.reconfigure(config)
    except FlowbotError as e:
        # Surfaced through /admin/telegram/status; the API keeps serving.
        logger.error("Engine failed to start", extra={"context": {"error": str(e)}})


@app.on_event("shutdown")
async def stop_engine() -> None:
    await app.state.engine.shutdown()


@app.get("/health")
async def health():
    return {"status": "ok", "engine": app.state.engine.mode.value}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "conversations": db.query(Conversation).count(),
        "messages": db.query(Message).count(),
        "templates": db.query(Template).count(),
        "notifications": db.query(Notification).count(),
    }
