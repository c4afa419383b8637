from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.orm import sessionmaker

from flowbot.database import build_engine, init_db
from flowbot.schemas.bot_config import BotConfiguration
from flowbot.schemas.telegram import BotIdentity, SentMessage


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("ADMIN_TOKEN", "test-admin-token")


@pytest.fixture
def sql_engine():
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return sessionmaker(bind=sql_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def bot_config():
    return BotConfiguration(
        bot_token="123456:ABC-def_ghi",
        bot_username="@easyflowbot",
        is_active=True,
    )


@pytest.fixture
def fake_client():
    """Platform client double: every send succeeds with an increasing message id."""
    client = Mock()
    counter = {"next": 9000}

    async def send_text(chat_id, text, options=None):
        counter["next"] += 1
        return SentMessage(message_id=counter["next"], chat_id=int(chat_id))

    client.send_text = AsyncMock(side_effect=send_text)
    client.answer_callback_query = AsyncMock()
    client.get_identity = AsyncMock(return_value=BotIdentity(id=123456, username="easyflowbot", first_name="EasyFlow"))
    client.register_webhook = AsyncMock()
    client.delete_webhook = AsyncMock()
    client.fetch_updates = AsyncMock(return_value=[])
    return client


@pytest.fixture
def make_raw_update():
    """Build a raw Bot API update payload."""

    def _make(update_id, text="Hello", message_id=None, chat_id=555, chat_type="private", **sender):
        sender_fields = {"id": chat_id, "is_bot": False, "first_name": "Mario", "username": "mario_rossi"}
        sender_fields.update(sender)
        chat = {"id": chat_id, "type": chat_type}
        if chat_type != "private":
            chat["title"] = "Finance team"
        return {
            "update_id": update_id,
            "message": {
                "message_id": message_id if message_id is not None else update_id,
                "date": 1702000000,
                "chat": chat,
                "from": sender_fields,
                "text": text,
            },
        }

    return _make


@pytest.fixture
def app_engine(fake_client, session_factory):
    from flowbot.services.bot_engine import BotEngine

    return BotEngine(session_factory=session_factory, client_factory=lambda token: fake_client, responder=AsyncMock())


@pytest.fixture
def api(app_engine, session_factory, monkeypatch):
    """TestClient wired to in-memory SQLite and a fake platform client."""
    from fastapi.testclient import TestClient

    from flowbot.config import settings
    from flowbot.database import get_db
    from flowbot.main import app

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(settings, "admin_token", "test-admin-token")
    monkeypatch.setattr(settings, "alert_bot_token", None)
    previous_engine = app.state.engine
    app.state.engine = app_engine
    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.engine = previous_engine


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": "test-admin-token"}
