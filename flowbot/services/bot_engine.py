"""Ingestion and reply engine for one bot configuration.

Constructed once at startup and handed to the routes. A settings change is
an explicit `reconfigure` call: the previous supervisor and client are torn
down before the new credential is used, so a stale token never keeps
polling.
"""

import asyncio
import hmac
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from flowbot.config import settings
from flowbot.database import SessionLocal
from flowbot.errors import AuthError, FlowbotError, NetworkError
from flowbot.logging_config import get_logger
from flowbot.models import Conversation, Template
from flowbot.schemas.bot_config import BotConfiguration
from flowbot.schemas.engine import ConnectionTestResult, EngineMode, EngineStatus
from flowbot.schemas.telegram import BotIdentity, TelegramUpdate
from flowbot.schemas.updates import parse_update
from flowbot.services import alert_service
from flowbot.services.ai_responder import AIResponder
from flowbot.services.polling_supervisor import PollingSupervisor
from flowbot.services.sequencer import UpdateSequencer
from flowbot.services.telegram_client import TelegramClient
from flowbot.services.update_handler import UpdateHandler

logger = get_logger("bot_engine")

ClientFactory = Callable[[str], TelegramClient]


class BotEngine:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        client_factory: ClientFactory = TelegramClient,
        responder: Optional[AIResponder] = None,
        retry_delay: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self._client_factory = client_factory
        self.responder = responder or AIResponder()
        self._lock = asyncio.Lock()
        self.retry_delay = retry_delay if retry_delay is not None else settings.restart_retry_seconds
        self._retry_task: Optional[asyncio.Task] = None

        self.mode = EngineMode.STOPPED
        self.config: Optional[BotConfiguration] = None
        self.identity: Optional[BotIdentity] = None
        self.last_error: Optional[str] = None
        self.client: Optional[TelegramClient] = None
        self.handler: Optional[UpdateHandler] = None
        self.sequencer: Optional[UpdateSequencer] = None
        self.supervisor: Optional[PollingSupervisor] = None

    async def reconfigure(self, config: Optional[BotConfiguration]) -> EngineMode:
        """Replace the configuration and re-establish ingestion.

        Raises AuthError when the platform rejects the credential; the engine
        is left Stopped in that case. A NetworkError is raised as well, but
        another attempt is scheduled after `retry_delay`.
        """
        async with self._lock:
            self._cancel_retry()
            await self._teardown()
            self.config = config
            self.last_error = None

            if config is None or not config.is_active or not config.bot_token:
                logger.info("Bot inactive, ingestion stopped")
                return self.mode

            client = self._client_factory(config.bot_token)
            try:
                self.identity = await client.get_identity()
            except AuthError as e:
                await self._report_auth_failure(str(e))
                raise
            except NetworkError as e:
                self._schedule_retry(config, e)
                raise

            self.client = client
            self.handler = UpdateHandler(
                client,
                config,
                responder=self.responder,
                session_factory=self._session_factory,
            )

            try:
                if config.webhook_url:
                    await client.register_webhook(config.webhook_url, config.webhook_secret, config.allowed_updates)
                    self.mode = EngineMode.WEBHOOK
                else:
                    await self._start_polling(client)
                    self.mode = EngineMode.POLLING
            except FlowbotError as e:
                await self._teardown()
                if isinstance(e, AuthError):
                    await self._report_auth_failure(str(e))
                elif isinstance(e, NetworkError):
                    self._schedule_retry(config, e)
                else:
                    self.last_error = str(e)
                raise

            logger.info(
                "Ingestion established",
                extra={"context": {"mode": self.mode.value, "bot": self.identity.handle}},
            )
            return self.mode

    async def restart(self) -> EngineMode:
        return await self.reconfigure(self.config)

    async def shutdown(self) -> None:
        async with self._lock:
            retry = self._cancel_retry()
            await self._teardown()
        if retry is not None:
            await asyncio.gather(retry, return_exceptions=True)

    async def _start_polling(self, client: TelegramClient) -> None:
        self.sequencer = UpdateSequencer(
            max_attempts=settings.max_update_attempts,
            handler_timeout=settings.update_timeout_seconds,
        )
        self.supervisor = PollingSupervisor(
            fetch=self._fetch,
            dispatch=self._dispatch_batch,
            prepare=client.delete_webhook,
            on_restart=self._on_restart,
            on_auth_failure=self._on_poll_auth_failure,
            failure_threshold=settings.poll_failure_threshold,
            watchdog_interval=settings.watchdog_interval_seconds,
            restart_backoff=settings.restart_backoff_seconds,
            restart_retry=settings.restart_retry_seconds,
        )
        await self.supervisor.start(settings.poll_interval_seconds)

    async def _teardown(self) -> None:
        if self.supervisor is not None:
            await self.supervisor.stop()
        self.supervisor = None
        self.sequencer = None
        self.client = None
        self.handler = None
        self.identity = None
        self.mode = EngineMode.STOPPED

    # --- retry after transient failures ---

    def _schedule_retry(self, config: BotConfiguration, error: NetworkError) -> None:
        self.last_error = str(error)
        logger.warning(
            "Ingestion setup failed, retrying",
            extra={"context": {"error": str(error), "retry_in_seconds": self.retry_delay}},
        )
        self._retry_task = asyncio.create_task(self._retry(config))

    def _cancel_retry(self) -> Optional[asyncio.Task]:
        """Drop the pending retry. Returns the cancelled task, if any."""
        task, self._retry_task = self._retry_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return None
        task.cancel()
        return task

    async def _retry(self, config: BotConfiguration) -> None:
        await asyncio.sleep(self.retry_delay)
        try:
            await self.reconfigure(config)
        except FlowbotError as e:
            # AuthError is already reported; NetworkError scheduled the next attempt.
            logger.info("Ingestion retry failed", extra={"context": {"error": str(e)}})

    @property
    def retry_pending(self) -> bool:
        return self._retry_task is not None and not self._retry_task.done()

    # --- polling callbacks ---

    async def _fetch(self) -> list[TelegramUpdate]:
        return await self.client.fetch_updates(
            self.sequencer.next_offset,
            limit=settings.poll_limit,
            timeout=0,
            allowed_updates=self.config.allowed_updates,
        )

    async def _dispatch_batch(self, batch: list[TelegramUpdate]) -> int:
        return await self.sequencer.process(batch, self._handle_raw)

    async def _handle_raw(self, raw: TelegramUpdate) -> None:
        await self.handler.handle(parse_update(raw))

    async def _on_restart(self, reason: str) -> None:
        await alert_service.alert_warning("Telegram polling restarted", {"reason": reason})

    async def _on_poll_auth_failure(self, error: str) -> None:
        self.mode = EngineMode.STOPPED
        await self._report_auth_failure(error)

    async def _report_auth_failure(self, error: str) -> None:
        self.last_error = error
        logger.error("Bot credential rejected", extra={"context": {"error": error}})
        await alert_service.alert_error("Telegram bot credential rejected", {"error": error})

    # --- webhook ingress ---

    def verify_webhook_secret(self, provided: Optional[str]) -> None:
        """Fail closed when a secret is configured and the header is absent or wrong."""
        expected = self.config.webhook_secret if self.config else None
        if not expected:
            return
        if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
            raise AuthError("Webhook secret mismatch")

    @property
    def accepting_updates(self) -> bool:
        return self.handler is not None

    async def dispatch(self, update: Any) -> None:
        """Handle one pushed update. Never raises."""
        if self.handler is None:
            logger.warning("Update received while ingestion is stopped")
            return
        try:
            await asyncio.wait_for(self.handler.handle(update), timeout=settings.update_timeout_seconds)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Webhook update handling failed",
                extra={"context": {"update_id": getattr(update, "update_id", None), "error": repr(e)}},
                exc_info=True,
            )

    # --- operator surface ---

    async def test_connection(self, config: Optional[BotConfiguration] = None) -> ConnectionTestResult:
        config = config or self.config
        if config is None or not config.bot_token:
            return ConnectionTestResult(success=False, error="Bot token not configured", error_code="not_configured")
        client = self._client_factory(config.bot_token)
        try:
            identity = await client.get_identity()
        except AuthError as e:
            return ConnectionTestResult(success=False, error=str(e), error_code="auth")
        except FlowbotError as e:
            return ConnectionTestResult(success=False, error=str(e), error_code="network")
        return ConnectionTestResult(success=True, bot=identity)

    def status(self, db: Optional[Session] = None) -> EngineStatus:
        status = EngineStatus(
            mode=self.mode,
            bot=self.identity,
            supervisor=self.supervisor.status() if self.supervisor else None,
            last_offset=self.sequencer.last_offset if self.sequencer else None,
            last_error=self.last_error or (self.supervisor.last_error if self.supervisor else None),
            retry_pending=self.retry_pending,
        )
        if db is not None:
            status.conversations = db.query(Conversation).count()
            status.templates = db.query(Template).count()
        return status
