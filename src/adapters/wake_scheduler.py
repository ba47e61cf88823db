"""asyncio-backed stand-in for the OS periodic wake facility."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Optional

from core.ports import EventHandler

LOGGER = logging.getLogger(__name__)


class AsyncioWakeScheduler:
    """Runs a callback once after a delay; scheduling again replaces the pending wake."""

    def __init__(self) -> None:
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    def schedule(self, delay: float, callback: EventHandler) -> None:
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, loop, callback)

    def _fire(self, loop: asyncio.AbstractEventLoop, callback: EventHandler) -> None:
        self._handle = None
        result = callback()
        if inspect.isawaitable(result):
            self._task = loop.create_task(result)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
