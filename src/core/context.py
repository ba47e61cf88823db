"""Per-process foreground context.

One instance is built at startup and handed to collaborators instead of
module-level singletons. Cross-process visibility only happens through the
shared files and the bus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from core import events
from core.alerts import AlertSender
from core.ports import BusPort
from core.rule_store import RuleStore
from core.state import AppState
from core.supervisor import HelperSupervisor
from core.wake import BackgroundRefresh

LOGGER = logging.getLogger(__name__)


@dataclass
class ForegroundContext:
    state: AppState
    bus: BusPort
    rules: RuleStore
    sender: AlertSender
    supervisor: HelperSupervisor
    refresher: BackgroundRefresh

    async def start(self) -> None:
        """Wire bus handlers, bring the helper up and start the timers."""

        self.bus.subscribe(events.MATCHED, self.supervisor.check_pending)
        self.bus.subscribe(events.HEARTBEAT, self.supervisor.record_heartbeat)
        await self.supervisor.ensure_running()
        self.supervisor.start_monitoring()
        self.supervisor.start_health_checks()
        self.refresher.schedule()
        # Pick up anything queued while we were not listening.
        await self.supervisor.check_pending()
        LOGGER.info("Foreground context started (helper %s)", self.state.helper_state.value)

    async def on_foreground(self) -> None:
        await self.supervisor.ensure_running()

    async def shutdown(self) -> None:
        """Detach from the bus and timers; the helper keeps running."""

        self.bus.unsubscribe(events.MATCHED)
        self.bus.unsubscribe(events.HEARTBEAT)
        self.supervisor.stop_health_checks()
        self.refresher.cancel()
        await self.sender.wait_idle()
