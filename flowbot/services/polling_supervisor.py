"""Polling supervisor with an independent watchdog.

Two asyncio tasks run per polling session: the fetch loop and the watchdog.
The fetch loop pulls a batch and hands it to a dispatch task so slow
downstream handling never delays the next tick. The watchdog restarts the
session when the fetch loop stops making progress without raising.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from flowbot.errors import AuthError
from flowbot.logging_config import get_logger
from flowbot.services.supervisor_state import (
    ACTIVE_PHASES,
    SupervisorPhase,
    after_fetch_failure,
    after_fetch_success,
    is_stalled,
    transition,
)

logger = get_logger("polling_supervisor")

FetchFn = Callable[[], Awaitable[list[Any]]]
DispatchFn = Callable[[list[Any]], Awaitable[Any]]
HookFn = Callable[[], Awaitable[None]]
NotifyFn = Callable[[str], Awaitable[None]]


class SupervisorStatus(BaseModel):
    phase: SupervisorPhase
    interval_seconds: float
    consecutive_failures: int
    restarts: int
    seconds_since_last_success: Optional[float] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    dispatch_in_flight: bool = False


class PollingSupervisor:
    def __init__(
        self,
        fetch: FetchFn,
        dispatch: DispatchFn,
        *,
        prepare: Optional[HookFn] = None,
        on_restart: Optional[NotifyFn] = None,
        on_auth_failure: Optional[NotifyFn] = None,
        failure_threshold: int = 3,
        watchdog_interval: float = 30.0,
        restart_backoff: float = 2.0,
        restart_retry: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._fetch = fetch
        self._dispatch = dispatch
        self._prepare = prepare
        self._on_restart = on_restart
        self._on_auth_failure = on_auth_failure
        self.failure_threshold = max(failure_threshold, 1)
        self.watchdog_interval = watchdog_interval
        self.restart_backoff = restart_backoff
        self.restart_retry = restart_retry
        self._clock = clock
        self._sleep = sleep

        self.phase = SupervisorPhase.STOPPED
        self.interval = 10.0
        self.consecutive_failures = 0
        self.restarts = 0
        self.last_error: Optional[str] = None
        self.last_success_at: Optional[float] = None
        self.last_activity_at: Optional[float] = None
        self._last_success_wall: Optional[datetime] = None

        self._fetch_task: Optional[asyncio.Task] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None

    # --- lifecycle ---

    async def start(self, interval: float) -> None:
        """Stopped -> Polling. An already running session is stopped first."""
        if self.phase != SupervisorPhase.STOPPED:
            await self.stop()
        self.interval = interval
        self.last_error = None
        if self._prepare:
            await self._prepare()
        self._launch()
        logger.info("Polling started", extra={"context": {"interval_seconds": interval}})

    async def stop(self) -> None:
        """Any phase -> Stopped. Both timers are gone when this returns."""
        if self.phase != SupervisorPhase.STOPPED:
            self._set_phase(SupervisorPhase.STOPPED)
        tasks = self._take_tasks(include_dispatch=True, include_restart=True)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Polling and watchdog stopped")

    def _launch(self) -> None:
        self.consecutive_failures = 0
        now = self._clock()
        self.last_success_at = now
        self.last_activity_at = now
        self._set_phase(SupervisorPhase.POLLING)
        self._fetch_task = asyncio.create_task(self._fetch_loop())
        self._watchdog_task = asyncio.create_task(self._watchdog_loop())

    def _take_tasks(self, include_dispatch: bool, include_restart: bool) -> list[asyncio.Task]:
        current = asyncio.current_task()
        tasks = [self._fetch_task, self._watchdog_task]
        self._fetch_task = None
        self._watchdog_task = None
        if include_dispatch:
            tasks.append(self._dispatch_task)
            self._dispatch_task = None
        if include_restart:
            tasks.append(self._restart_task)
            self._restart_task = None
        return [task for task in tasks if task is not None and task is not current and not task.done()]

    def _set_phase(self, new_phase: SupervisorPhase) -> None:
        old_phase = self.phase
        if old_phase == new_phase:
            return
        self.phase = transition(old_phase, new_phase)
        logger.info(
            "Supervisor phase changed",
            extra={
                "context": {
                    "from": old_phase.value,
                    "to": new_phase.value,
                    "consecutive_failures": self.consecutive_failures,
                }
            },
        )

    # --- fetch timer ---

    async def _fetch_loop(self) -> None:
        while self.phase in ACTIVE_PHASES:
            await self.poll_once()
            if self.phase not in ACTIVE_PHASES:
                break
            await self._sleep(self.interval)

    async def poll_once(self) -> None:
        """One fetch tick."""
        if self.phase not in ACTIVE_PHASES:
            return

        if self._dispatch_task is not None and not self._dispatch_task.done():
            # Previous batch still being handled; its offset is not committed yet.
            logger.debug("Skipping fetch, previous batch in flight")
            self._record_success()
            return

        try:
            batch = await self._fetch()
        except asyncio.CancelledError:
            raise
        except AuthError as e:
            await self._halt_on_auth(e)
            return
        except Exception as e:
            self._record_failure(e)
            return

        if self.phase not in ACTIVE_PHASES:
            return
        self._record_success()
        if batch:
            logger.info("Fetched updates", extra={"context": {"count": len(batch)}})
            self._dispatch_task = asyncio.create_task(self._run_dispatch(batch))

    async def _run_dispatch(self, batch: list[Any]) -> None:
        try:
            await self._dispatch(batch)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Batch dispatch failed: {e}", exc_info=True)

    def _record_success(self) -> None:
        now = self._clock()
        self.consecutive_failures = 0
        self.last_success_at = now
        self.last_activity_at = now
        self._last_success_wall = datetime.now(timezone.utc)
        self._set_phase(after_fetch_success(self.phase))

    def _record_failure(self, error: Exception) -> None:
        self.consecutive_failures += 1
        self.last_activity_at = self._clock()
        self.last_error = str(error)
        logger.warning(
            "Poll failed",
            extra={
                "context": {
                    "attempt": self.consecutive_failures,
                    "threshold": self.failure_threshold,
                    "error": str(error),
                }
            },
        )
        self._set_phase(after_fetch_failure(self.phase, self.consecutive_failures, self.failure_threshold))
        if self.phase == SupervisorPhase.RESTARTING:
            self._schedule_restart("failure threshold reached")

    async def _halt_on_auth(self, error: AuthError) -> None:
        self.last_error = str(error)
        logger.error("Polling credential rejected, stopping", extra={"context": {"error": str(error)}})
        self._set_phase(SupervisorPhase.STOPPED)
        for task in self._take_tasks(include_dispatch=False, include_restart=False):
            task.cancel()
        if self._on_auth_failure:
            await self._notify(self._on_auth_failure, str(error))

    # --- watchdog timer ---

    async def _watchdog_loop(self) -> None:
        while True:
            await self._sleep(self.watchdog_interval)
            self.check_health()

    def check_health(self) -> bool:
        """Force a restart when the fetch timer looks wedged. Returns True if it did."""
        if self.phase not in ACTIVE_PHASES or self.last_success_at is None:
            return False
        now = self._clock()
        since_success = now - self.last_success_at
        since_activity = now - (self.last_activity_at or self.last_success_at)
        if not is_stalled(self.phase, since_success, since_activity, self.interval):
            return False
        logger.warning(
            "Watchdog detected stalled polling",
            extra={
                "context": {
                    "phase": self.phase.value,
                    "seconds_since_success": round(since_success, 3),
                    "interval_seconds": self.interval,
                }
            },
        )
        self._set_phase(SupervisorPhase.RESTARTING)
        self._schedule_restart("watchdog: polling stalled")
        return True

    # --- restart ---

    def _schedule_restart(self, reason: str) -> None:
        if self._restart_task is not None and not self._restart_task.done():
            return
        self.restarts += 1
        self._restart_task = asyncio.create_task(self._restart(reason))

    async def _restart(self, reason: str) -> None:
        logger.warning("Restarting polling", extra={"context": {"reason": reason, "restarts": self.restarts}})
        tasks = self._take_tasks(include_dispatch=False, include_restart=False)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._on_restart:
            await self._notify(self._on_restart, reason)

        await self._sleep(self.restart_backoff)
        while self.phase == SupervisorPhase.RESTARTING:
            try:
                if self._prepare:
                    await self._prepare()
            except asyncio.CancelledError:
                raise
            except AuthError as e:
                self._restart_task = None
                await self._halt_on_auth(e)
                return
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"Polling restart failed, retrying in {self.restart_retry}s: {e}")
                await self._sleep(self.restart_retry)
                continue
            self._launch()
            logger.info("Polling restarted", extra={"context": {"reason": reason}})
            return

    async def _notify(self, callback: NotifyFn, message: str) -> None:
        try:
            await callback(message)
        except Exception as e:
            logger.error(f"Supervisor callback failed: {e}")

    def status(self) -> SupervisorStatus:
        since = None
        if self.last_success_at is not None and self.phase != SupervisorPhase.STOPPED:
            since = round(self._clock() - self.last_success_at, 3)
        return SupervisorStatus(
            phase=self.phase,
            interval_seconds=self.interval,
            consecutive_failures=self.consecutive_failures,
            restarts=self.restarts,
            seconds_since_last_success=since,
            last_success_at=self._last_success_wall,
            last_error=self.last_error,
            dispatch_in_flight=self._dispatch_task is not None and not self._dispatch_task.done(),
        )
