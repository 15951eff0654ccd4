# babyguess/domain/game/timers.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Set, Tuple

logger = logging.getLogger(__name__)

RoundKey = Tuple[str, int]
RoundCallback = Callable[[str, int], Awaitable[object]]


class RoundTimers:
    """
    In-process registry of background tasks:
    - one timeout task per (session_id, round_index)
    - deferred work (the settle delay before advancing)
    Tasks have no caller to report to, so failures are logged here.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._rounds: Dict[RoundKey, asyncio.Task] = {}
        self._deferred: Set[asyncio.Task] = set()

    def schedule_round(self, session_id: str, round_index: int, delay: float, callback: RoundCallback) -> None:
        if not self.enabled:
            return
        key = (session_id, round_index)
        self.cancel(session_id, round_index)
        self._rounds[key] = asyncio.create_task(self._fire(key, delay, callback))
        logger.info("round timer set: %ss", delay, extra={"session_id": session_id, "round_index": round_index})

    async def _fire(self, key: RoundKey, delay: float, callback: RoundCallback) -> None:
        await asyncio.sleep(delay)
        # unregister first so the callback cancelling this round's timer does not cancel itself
        if self._rounds.get(key) is asyncio.current_task():
            self._rounds.pop(key, None)
        logger.info("round timer fired", extra={"session_id": key[0], "round_index": key[1]})
        try:
            await callback(*key)
        except Exception:
            logger.exception("round timeout handling failed", extra={"session_id": key[0], "round_index": key[1]})

    def defer(self, delay: float, work: Callable[[], Awaitable[object]]) -> asyncio.Task:
        async def run() -> None:
            await asyncio.sleep(delay)
            try:
                await work()
            except Exception:
                logger.exception("deferred game work failed")

        task = asyncio.create_task(run())
        self._deferred.add(task)
        task.add_done_callback(self._deferred.discard)
        return task

    def is_scheduled(self, session_id: str, round_index: int) -> bool:
        return (session_id, round_index) in self._rounds

    def cancel(self, session_id: str, round_index: int) -> None:
        task = self._rounds.pop((session_id, round_index), None)
        if task and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        for task in list(self._rounds.values()) + list(self._deferred):
            if not task.done():
                task.cancel()
        self._rounds.clear()
        self._deferred.clear()

    async def shutdown(self) -> None:
        tasks = list(self._rounds.values()) + list(self._deferred)
        self.cancel_all()
        await asyncio.gather(*tasks, return_exceptions=True)
