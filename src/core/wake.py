"""Periodic background wake: keep the helper alive and drain the queue."""

from __future__ import annotations

import logging

from core.ports import WakeSchedulerPort
from core.supervisor import HelperSupervisor

LOGGER = logging.getLogger(__name__)


class BackgroundRefresh:
    def __init__(
        self,
        supervisor: HelperSupervisor,
        scheduler: WakeSchedulerPort,
        interval: float = 60.0,
    ) -> None:
        self._supervisor = supervisor
        self._scheduler = scheduler
        self._interval = interval

    def schedule(self) -> None:
        self._scheduler.schedule(self._interval, self.fire)

    async def fire(self) -> None:
        """Wake callback. Always reschedules, even when a step fails."""

        try:
            await self._supervisor.ensure_running()
            await self._supervisor.check_pending()
        except Exception:
            LOGGER.exception("Background refresh failed")
        finally:
            self.schedule()

    def cancel(self) -> None:
        self._scheduler.cancel()
