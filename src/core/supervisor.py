"""Helper process supervision.

The foreground process cannot watch notifications itself, so it keeps the
privileged helper alive:

    NotRunning -> Starting -> RunningUnhealthy <-> RunningHealthy
                      ^                                  |
                      +------ stale heartbeat -----------+

Transitions run on the foreground event loop under one asyncio lock, so a
health tick, a heartbeat and an explicit stop never interleave. Blocking
process calls (spawn, SIGTERM) run in the loop's executor and only their
result is applied back here.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import time
from typing import Callable, Optional

from core import events
from core.alerts import AlertSender
from core.config import SupervisorConfig
from core.ports import BusPort, ProcessProbePort, SharedStatePort, SpawnerPort
from core.state import AppState, HelperHealth, HelperState, classify_health

LOGGER = logging.getLogger(__name__)


class HelperSupervisor:
    def __init__(
        self,
        shared: SharedStatePort,
        spawner: SpawnerPort,
        probe: ProcessProbePort,
        bus: BusPort,
        sender: AlertSender,
        state: AppState,
        config: SupervisorConfig = SupervisorConfig(),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._shared = shared
        self._spawner = spawner
        self._probe = probe
        self._bus = bus
        self._sender = sender
        self._state = state
        self._config = config
        self._clock = clock
        self._lock = asyncio.Lock()
        self._health_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> HelperState:
        return self._state.helper_state

    def _pid_alive(self) -> bool:
        pid = self._shared.read_pid()
        if pid is None:
            return False
        return self._probe.is_alive(pid)

    def health(self) -> HelperHealth:
        """Classify the helper from the pid file and heartbeat file alone."""

        return classify_health(
            self._pid_alive(),
            self._shared.heartbeat_age(self._clock()),
            self._config.heartbeat_freshness,
        )

    # -- lifecycle -------------------------------------------------------

    async def ensure_running(self) -> None:
        """Make sure a helper is running; cheap and safe to call repeatedly."""

        async with self._lock:
            if self._state.helper_state is HelperState.RUNNING_HEALTHY and self._pid_alive():
                return
            if not self._pid_alive():
                await self._spawn()
            else:
                await self._evaluate_heartbeat()

    async def check_health(self) -> None:
        """One health tick: respawn a dead helper or one with a stale heartbeat."""

        async with self._lock:
            if not self._pid_alive():
                if self._state.helper_state is not HelperState.NOT_RUNNING:
                    LOGGER.warning("Helper process is gone, respawning")
                    self._state.transition(HelperState.NOT_RUNNING)
                await self._spawn()
                return
            await self._evaluate_heartbeat()

    async def _evaluate_heartbeat(self) -> None:
        age = self._shared.heartbeat_age(self._clock())
        if age is None:
            # No heartbeat file yet; a freshly spawned helper may not have
            # written it. Inconclusive, keep the current state.
            if self._state.helper_state is HelperState.NOT_RUNNING:
                self._state.transition(HelperState.RUNNING_UNHEALTHY)
            return
        if age < self._config.heartbeat_freshness:
            self._state.transition(HelperState.RUNNING_HEALTHY)
            return

        LOGGER.warning("Helper heartbeat is %.0fs old, restarting", age)
        stale_pid = self._shared.read_pid()
        if stale_pid is not None:
            await self._terminate(stale_pid)
        await self._spawn()

    async def _spawn(self) -> None:
        self._state.transition(HelperState.STARTING)
        loop = asyncio.get_running_loop()
        try:
            pid = await loop.run_in_executor(None, self._spawner.spawn)
        except (OSError, subprocess.SubprocessError):
            LOGGER.exception("Failed to spawn helper")
            self._state.transition(HelperState.NOT_RUNNING)
            return

        try:
            self._shared.write_pid(pid)
        except OSError:
            LOGGER.exception("Failed to record helper pid %s", pid)
        LOGGER.info("Helper spawned with pid %s", pid)
        self._state.transition(HelperState.RUNNING_UNHEALTHY)

    async def _terminate(self, pid: int) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._probe.terminate, pid)
        except (OSError, subprocess.SubprocessError):
            LOGGER.warning("Failed to signal helper pid %s", pid, exc_info=True)

    async def stop(self) -> None:
        """Stop the helper: a bus nudge plus SIGTERM, which is authoritative."""

        async with self._lock:
            self._bus.publish(events.STOP)
            pid = self._shared.read_pid()
            if pid is not None:
                await self._terminate(pid)
            self._state.transition(HelperState.NOT_RUNNING)

    async def record_heartbeat(self) -> None:
        """Bus `heartbeat` handler."""

        async with self._lock:
            self._state.last_heartbeat = self._clock()
            self._state.transition(HelperState.RUNNING_HEALTHY)

    def notify_rules_updated(self) -> None:
        self._bus.publish(events.RULES_UPDATED)

    def start_monitoring(self) -> None:
        self._bus.publish(events.START)

    # -- periodic health checks -----------------------------------------

    def start_health_checks(self) -> None:
        if self._health_task is not None and not self._health_task.done():
            return
        self._health_task = asyncio.get_running_loop().create_task(self._health_loop())

    def stop_health_checks(self) -> None:
        if self._health_task is not None:
            self._health_task.cancel()
            self._health_task = None

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.health_check_interval)
            try:
                await self.check_health()
            except Exception:
                LOGGER.exception("Health check failed")

    # -- match queue -----------------------------------------------------

    async def check_pending(self) -> int:
        """Drain the match queue into the alert sender.

        Entries are handed over in file order, then the queue is reset to an
        empty array. A missing or corrupt queue counts as empty.
        """

        matches = self._shared.read_matches()
        for match in matches:
            self._sender.send(
                title=match.title,
                body=match.body,
                bundle_id=match.bundle_id,
                rule_name=match.matched_rule_name,
            )
        try:
            self._shared.clear_matches()
        except OSError:
            LOGGER.exception("Failed to clear match queue")
        if matches:
            LOGGER.info("Drained %s matched notifications", len(matches))
        return len(matches)
