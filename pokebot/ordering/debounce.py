"""
Message debouncing.

Customers often type one thought as several quick messages ("arroz", then
"pollo"). Messages that arrive inside the window are buffered in the session
record and handed on as a single aggregated turn when the window closes.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from .session import SessionStore

logger = logging.getLogger(__name__)

FlushHandler = Callable[[str, str], Awaitable[None]]

SEPARATOR = " "


class MessageDebouncer:
    def __init__(
        self,
        store: SessionStore,
        on_flush: FlushHandler,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.on_flush = on_flush
        self.window_seconds = window_seconds
        self.clock = clock
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    async def submit(self, user_id: str, text: str) -> bool:
        """
        Buffer `text` for `user_id`.
        Returns True when this message opened a new buffer (and scheduled a flush),
        False when it was appended to an active one.
        """
        now = self.clock()
        session = self.store.get(user_id)

        if session.buffer_until and session.buffer_until > now:
            logger.info("Buffering message from %s", user_id)
            session.pending_messages.append(text)
            self.store.put(user_id, session)
            return False

        logger.info("Starting %.1fs buffer for %s", self.window_seconds, user_id)
        # Leftovers of a window whose flush never ran (late timer, restart) ride along
        session.pending_messages = list(session.pending_messages) + [text]
        session.buffer_until = now + self.window_seconds
        self.store.put(user_id, session)
        self._schedule(user_id)
        return True

    def _schedule(self, user_id: str) -> None:
        loop = asyncio.get_running_loop()
        old = self._timers.pop(user_id, None)
        if old is not None:
            old.cancel()
        self._timers[user_id] = loop.call_later(self.window_seconds, self._fire, user_id)

    def _fire(self, user_id: str) -> None:
        self._timers.pop(user_id, None)
        task = asyncio.ensure_future(self.flush_now(user_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def take_pending(self, user_id: str) -> Optional[str]:
        """
        Re-read the session at fire time, drain the buffer and return the
        aggregated text. None when there is nothing buffered.
        """
        session = self.store.get(user_id)
        if not session.pending_messages:
            return None
        aggregated = SEPARATOR.join(m.strip() for m in session.pending_messages if m and m.strip())
        session.pending_messages = []
        session.buffer_until = 0.0
        self.store.put(user_id, session)
        return aggregated or None

    async def flush_now(self, user_id: str) -> None:
        timer = self._timers.pop(user_id, None)
        if timer is not None:
            timer.cancel()
        try:
            aggregated = self.take_pending(user_id)
            if aggregated is None:
                return
            logger.info("Processing aggregated turn for %s", user_id)
            await self.on_flush(user_id, aggregated)
        except Exception:
            logger.exception("Flush failed for %s", user_id)

    def pending_users(self) -> list[str]:
        return list(self._timers)

    async def aclose(self) -> None:
        """Flush every open buffer (used on shutdown)."""
        for user_id in self.pending_users():
            await self.flush_now(user_id)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
