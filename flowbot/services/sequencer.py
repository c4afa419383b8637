"""Offset tracking for polled updates.

Updates are handed to the handler in ascending update_id order and the offset
only moves past an update once its handler returned. A failing update stops
the batch so the next poll fetches it again (at-least-once). An update that
keeps failing is skipped after `max_attempts` so it cannot wedge ingestion.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, Optional, Protocol

from flowbot.logging_config import get_logger

logger = get_logger("sequencer")


class SequencedUpdate(Protocol):
    update_id: int


UpdateHandlerFn = Callable[[SequencedUpdate], Awaitable[None]]


class UpdateSequencer:
    def __init__(self, max_attempts: int = 3, handler_timeout: Optional[float] = None):
        self.last_offset = 0
        self.max_attempts = max(max_attempts, 1)
        self.handler_timeout = handler_timeout
        self._failures: dict[int, int] = {}

    @property
    def next_offset(self) -> int:
        return self.last_offset + 1

    def reset(self, offset: int = 0) -> None:
        self.last_offset = offset
        self._failures.clear()

    def pending(self, updates: Iterable[SequencedUpdate]) -> list[SequencedUpdate]:
        """Drop already-processed and repeated updates, sort ascending."""
        fresh: dict[int, SequencedUpdate] = {}
        for update in updates:
            if update.update_id > self.last_offset:
                fresh.setdefault(update.update_id, update)
        return [fresh[update_id] for update_id in sorted(fresh)]

    def advance(self, update_id: int) -> None:
        if update_id > self.last_offset:
            self.last_offset = update_id
        self._failures.pop(update_id, None)

    async def process(self, updates: Iterable[SequencedUpdate], handler: UpdateHandlerFn) -> int:
        """Run handler over new updates in order. Returns how many were handled."""
        handled = 0
        for update in self.pending(updates):
            try:
                if self.handler_timeout:
                    await asyncio.wait_for(handler(update), timeout=self.handler_timeout)
                else:
                    await handler(update)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                attempts = self._failures.get(update.update_id, 0) + 1
                self._failures[update.update_id] = attempts
                context = {"update_id": update.update_id, "attempt": attempts, "error": repr(e)}
                if attempts >= self.max_attempts:
                    logger.error("Giving up on update after repeated failures", extra={"context": context})
                    self.advance(update.update_id)
                    continue
                logger.warning("Update handling failed, will refetch", extra={"context": context})
                break
            self.advance(update.update_id)
            handled += 1
        return handled
