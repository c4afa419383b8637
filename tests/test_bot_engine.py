import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from flowbot.errors import AuthError, NetworkError
from flowbot.models import Message
from flowbot.schemas.engine import EngineMode
from flowbot.schemas.telegram import TelegramUpdate
from flowbot.schemas.updates import parse_update_payload
from flowbot.services.bot_engine import BotEngine
from flowbot.services.supervisor_state import SupervisorPhase


@pytest.fixture(autouse=True)
def quiet_alerts():
    with patch("flowbot.services.bot_engine.alert_service") as alerts:
        alerts.alert_error = AsyncMock(return_value=False)
        alerts.alert_warning = AsyncMock(return_value=False)
        yield alerts


def _engine(fake_client, session_factory):
    return BotEngine(session_factory=session_factory, client_factory=lambda token: fake_client, responder=AsyncMock())


class TestReconfigure:
    def test_inactive_config_stays_stopped(self, fake_client, bot_config, session_factory):
        bot_config.is_active = False
        engine = _engine(fake_client, session_factory)

        mode = asyncio.run(engine.reconfigure(bot_config))

        assert mode == EngineMode.STOPPED
        fake_client.get_identity.assert_not_awaited()

    def test_webhook_mode_registers_webhook(self, fake_client, bot_config, session_factory):
        bot_config.webhook_url = "https://example.com/telegram/webhook"
        bot_config.webhook_secret = "s3cret"
        engine = _engine(fake_client, session_factory)

        mode = asyncio.run(engine.reconfigure(bot_config))

        assert mode == EngineMode.WEBHOOK
        fake_client.register_webhook.assert_awaited_once_with(
            "https://example.com/telegram/webhook", "s3cret", ["message", "callback_query"]
        )
        assert engine.supervisor is None
        assert engine.identity.handle == "@easyflowbot"

    def test_polling_mode_starts_supervisor(self, fake_client, bot_config, session_factory):
        engine = _engine(fake_client, session_factory)

        async def scenario():
            mode = await engine.reconfigure(bot_config)
            phase = engine.supervisor.phase
            await engine.shutdown()
            return mode, phase

        mode, phase = asyncio.run(scenario())

        assert mode == EngineMode.POLLING
        assert phase == SupervisorPhase.POLLING
        fake_client.delete_webhook.assert_awaited()
        assert engine.mode == EngineMode.STOPPED
        assert engine.supervisor is None

    def test_rejected_token_raises_and_alerts(self, fake_client, bot_config, session_factory, quiet_alerts):
        fake_client.get_identity.side_effect = AuthError("Unauthorized")
        engine = _engine(fake_client, session_factory)

        with pytest.raises(AuthError):
            asyncio.run(engine.reconfigure(bot_config))

        assert engine.mode == EngineMode.STOPPED
        assert engine.last_error == "Unauthorized"
        assert engine.config is bot_config
        quiet_alerts.alert_error.assert_awaited_once()
        assert engine.retry_pending is False

    def test_webhook_registration_failure_leaves_engine_stopped(self, fake_client, bot_config, session_factory):
        bot_config.webhook_url = "https://example.com/telegram/webhook"
        fake_client.register_webhook.side_effect = NetworkError("Bad Request: bad webhook")
        engine = _engine(fake_client, session_factory)

        with pytest.raises(NetworkError):
            asyncio.run(engine.reconfigure(bot_config))

        assert engine.mode == EngineMode.STOPPED
        assert engine.handler is None

    def test_transient_failure_on_webhook_delete_retries_into_polling(
        self, fake_client, bot_config, session_factory
    ):
        fake_client.delete_webhook.side_effect = [NetworkError("timeout")] + [None] * 5
        engine = BotEngine(
            session_factory=session_factory,
            client_factory=lambda token: fake_client,
            responder=AsyncMock(),
            retry_delay=0,
        )

        async def scenario():
            with pytest.raises(NetworkError):
                await engine.reconfigure(bot_config)
            pending = engine.retry_pending
            for _ in range(100):
                if engine.mode == EngineMode.POLLING and fake_client.fetch_updates.await_count:
                    break
                await asyncio.sleep(0.01)
            result = (pending, engine.mode, engine.supervisor.phase, fake_client.fetch_updates.await_count)
            await engine.shutdown()
            return result

        pending, mode, phase, fetches = asyncio.run(scenario())

        assert pending is True
        assert mode == EngineMode.POLLING
        assert phase == SupervisorPhase.POLLING
        assert fetches >= 1
        assert engine.retry_pending is False

    def test_transient_identity_failure_retries_into_webhook(self, fake_client, bot_config, session_factory):
        bot_config.webhook_url = "https://example.com/telegram/webhook"
        identity = fake_client.get_identity.return_value
        fake_client.get_identity.side_effect = [NetworkError("Bad Gateway"), identity]
        engine = BotEngine(
            session_factory=session_factory,
            client_factory=lambda token: fake_client,
            responder=AsyncMock(),
            retry_delay=0,
        )

        async def scenario():
            with pytest.raises(NetworkError):
                await engine.reconfigure(bot_config)
            for _ in range(100):
                if engine.mode == EngineMode.WEBHOOK:
                    break
                await asyncio.sleep(0.01)
            return engine.mode

        assert asyncio.run(scenario()) == EngineMode.WEBHOOK
        fake_client.register_webhook.assert_awaited_once()
        assert engine.last_error is None

    def test_reconfigure_cancels_pending_retry(self, fake_client, bot_config, session_factory):
        fake_client.get_identity.side_effect = NetworkError("timeout")
        engine = BotEngine(
            session_factory=session_factory,
            client_factory=lambda token: fake_client,
            responder=AsyncMock(),
            retry_delay=60,
        )
        inactive = bot_config.model_copy(update={"is_active": False})

        async def scenario():
            with pytest.raises(NetworkError):
                await engine.reconfigure(bot_config)
            pending = engine.retry_pending
            await engine.reconfigure(inactive)
            return pending, engine.retry_pending

        assert asyncio.run(scenario()) == (True, False)

    def test_reconfigure_tears_down_previous_supervisor(self, fake_client, bot_config, session_factory):
        engine = _engine(fake_client, session_factory)

        async def scenario():
            await engine.reconfigure(bot_config)
            old = engine.supervisor
            await engine.reconfigure(bot_config)
            new = engine.supervisor
            await engine.shutdown()
            return old, new

        old, new = asyncio.run(scenario())

        assert old is not new
        assert old.phase == SupervisorPhase.STOPPED


class TestPollingPath:
    def test_fetched_batch_is_handled_and_offset_advances(
        self, fake_client, bot_config, session_factory, db, make_raw_update
    ):
        batch = [TelegramUpdate(**make_raw_update(i, text=f"m{i}")) for i in (5, 6, 7)]
        engine = _engine(fake_client, session_factory)

        async def scenario():
            await engine.reconfigure(bot_config)
            await engine.supervisor.stop()
            engine.sequencer.reset(4)
            fake_client.fetch_updates.return_value = batch
            fetched = await engine._fetch()
            await engine._dispatch_batch(fetched)
            return fake_client.fetch_updates.call_args

        call = asyncio.run(scenario())

        assert call.args[0] == 5
        assert engine.sequencer.last_offset == 7
        assert db.query(Message).count() == 3


class TestWebhookPath:
    def test_secret_checked(self, fake_client, bot_config, session_factory):
        bot_config.webhook_url = "https://example.com/telegram/webhook"
        bot_config.webhook_secret = "s3cret"
        engine = _engine(fake_client, session_factory)
        asyncio.run(engine.reconfigure(bot_config))

        engine.verify_webhook_secret("s3cret")
        with pytest.raises(AuthError):
            engine.verify_webhook_secret("wrong")
        with pytest.raises(AuthError):
            engine.verify_webhook_secret(None)

    def test_no_secret_configured_accepts_anything(self, fake_client, bot_config, session_factory):
        engine = _engine(fake_client, session_factory)
        engine.config = bot_config
        engine.verify_webhook_secret(None)

    def test_dispatch_handles_update(self, fake_client, bot_config, session_factory, db, make_raw_update):
        bot_config.webhook_url = "https://example.com/telegram/webhook"
        engine = _engine(fake_client, session_factory)

        async def scenario():
            await engine.reconfigure(bot_config)
            await engine.dispatch(parse_update_payload(make_raw_update(9)))

        asyncio.run(scenario())

        assert db.query(Message).count() == 1

    def test_dispatch_without_handler_is_noop(self, fake_client, session_factory, make_raw_update):
        engine = _engine(fake_client, session_factory)
        asyncio.run(engine.dispatch(parse_update_payload(make_raw_update(9))))


class TestOperatorSurface:
    def test_connection_ok(self, fake_client, bot_config, session_factory):
        engine = _engine(fake_client, session_factory)

        result = asyncio.run(engine.test_connection(bot_config))

        assert result.success is True
        assert result.bot.username == "easyflowbot"

    def test_connection_rejected(self, fake_client, bot_config, session_factory):
        fake_client.get_identity.side_effect = AuthError("Unauthorized")
        engine = _engine(fake_client, session_factory)

        result = asyncio.run(engine.test_connection(bot_config))

        assert result.success is False
        assert result.error_code == "auth"

    def test_connection_without_config(self, fake_client, session_factory):
        result = asyncio.run(_engine(fake_client, session_factory).test_connection())
        assert result.error_code == "not_configured"

    def test_status_counts(self, fake_client, session_factory, db):
        status = _engine(fake_client, session_factory).status(db)

        assert status.mode == EngineMode.STOPPED
        assert status.conversations == 0
        assert status.templates == 0
        assert status.supervisor is None
