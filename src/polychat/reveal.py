"""Progressive reveal of message text, one character per tick.

Reveal progress is a display-only projection keyed by message slot; stored
messages are never touched. Each slot runs at most one asyncio task at a
time. Starting a reveal with new text for a slot cancels the previous task
and bumps the slot's generation, so a stale tick can never write.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

TickCallback = Callable[[str, str], None]


class RevealState(BaseModel):
    slot_id: str
    full_text: str
    prefix: str = ""
    generation: int = 0

    @property
    def complete(self) -> bool:
        return self.prefix == self.full_text


class RevealScheduler:
    """Schedules per-slot reveal tasks on the running event loop.

    Parameters
    ----------
    delay : float
        Seconds between ticks.
    on_tick : callable, optional
        Called as ``on_tick(slot_id, prefix)`` after every committed tick.
    sleep : callable, optional
        Awaitable sleep, ``asyncio.sleep`` by default.
    """

    def __init__(
        self,
        delay: float = 0.03,
        on_tick: Optional[TickCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.delay = delay
        self.on_tick = on_tick
        self._sleep = sleep
        self._states: Dict[str, RevealState] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def start_reveal(
        self, slot_id: str, full_text: str, on_tick: Optional[TickCallback] = None
    ) -> asyncio.Task:
        """Starts revealing ``full_text`` in ``slot_id``.

        Restarting a slot with different text resets its prefix to empty and
        invalidates the prior run. Restarting with the same text while it is
        still running keeps the current run.
        """
        previous = self._states.get(slot_id)
        running = self._tasks.get(slot_id)
        if previous is not None and previous.full_text == full_text and running and not running.done():
            return running

        if running is not None and not running.done():
            running.cancel()
        state = RevealState(
            slot_id=slot_id,
            full_text=full_text,
            generation=previous.generation + 1 if previous else 0,
        )
        self._states[slot_id] = state
        task = asyncio.get_running_loop().create_task(
            self._run(state, on_tick or self.on_tick), name=f"reveal-{slot_id}"
        )
        self._tasks[slot_id] = task
        return task

    async def _run(self, state: RevealState, on_tick: Optional[TickCallback]) -> None:
        try:
            for end in range(1, len(state.full_text) + 1):
                await self._sleep(self.delay)
                if self._states.get(state.slot_id) is not state:
                    return
                state.prefix = state.full_text[:end]
                if on_tick is not None:
                    on_tick(state.slot_id, state.prefix)
        finally:
            if self._tasks.get(state.slot_id) is asyncio.current_task():
                del self._tasks[state.slot_id]

    def text(self, slot_id: str) -> Optional[str]:
        """Currently revealed prefix, or None for an unknown slot."""
        state = self._states.get(slot_id)
        return state.prefix if state else None

    def display_text(self, slot_id: str, full_text: str) -> str:
        """What to show for a message: its revealed prefix while that reveal
        targets the same text, otherwise the full text."""
        state = self._states.get(slot_id)
        if state is None or state.full_text != full_text:
            return full_text
        return state.prefix

    def is_revealing(self, slot_id: str) -> bool:
        task = self._tasks.get(slot_id)
        return task is not None and not task.done()

    def active_slots(self) -> List[str]:
        return [slot for slot, task in self._tasks.items() if not task.done()]

    def display_texts(self, messages) -> Dict[str, str]:
        return {m.id: self.display_text(m.id, m.content) for m in messages}

    def cancel(self, slot_id: str, complete: bool = True) -> None:
        """Stops a reveal. With ``complete`` the slot jumps to its full text."""
        task = self._tasks.pop(slot_id, None)
        if task is not None and not task.done():
            task.cancel()
        state = self._states.get(slot_id)
        if state is not None:
            if complete:
                state.prefix = state.full_text
            else:
                del self._states[slot_id]

    def cancel_all(self) -> None:
        for slot_id in list(self._tasks):
            self.cancel(slot_id)
        logger.debug("Cancelled all reveals")

    def clear(self) -> None:
        """Cancels every reveal and forgets all slots."""
        for slot_id in list(self._states):
            self.cancel(slot_id, complete=False)
