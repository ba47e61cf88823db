"""Observable foreground state.

Only mutated from the foreground event loop so presentation code never sees
a half-applied update.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, List, Optional


class HelperState(str, Enum):
    """Supervisor state machine."""

    NOT_RUNNING = "not-running"
    STARTING = "starting"
    RUNNING_UNHEALTHY = "running-unhealthy"
    RUNNING_HEALTHY = "running-healthy"


class HelperHealth(str, Enum):
    """Point-in-time classification derived from pid liveness and heartbeat age."""

    NOT_RUNNING = "not-running"
    RUNNING_UNHEALTHY = "running-unhealthy"
    RUNNING_HEALTHY = "running-healthy"


def classify_health(
    pid_alive: bool,
    heartbeat_age: Optional[float],
    freshness: float,
) -> HelperHealth:
    if not pid_alive:
        return HelperHealth.NOT_RUNNING
    if heartbeat_age is not None and heartbeat_age < freshness:
        return HelperHealth.RUNNING_HEALTHY
    return HelperHealth.RUNNING_UNHEALTHY


@dataclass(frozen=True)
class DeliveredAlert:
    title: str
    bundle_id: str
    rule_name: str
    timestamp: float


StateListener = Callable[[HelperState, HelperState], None]


@dataclass
class AppState:
    helper_state: HelperState = HelperState.NOT_RUNNING
    helper_running: bool = False
    is_monitoring: bool = False
    matched_count: int = 0
    last_heartbeat: Optional[float] = None
    recent_limit: int = 50
    recent_alerts: Deque[DeliveredAlert] = field(default_factory=deque)
    transitions: List[tuple[HelperState, HelperState]] = field(default_factory=list)
    _listeners: List[StateListener] = field(default_factory=list, repr=False)

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def transition(self, new_state: HelperState) -> None:
        old_state = self.helper_state
        if old_state is new_state:
            return
        self.helper_state = new_state
        self.helper_running = new_state is not HelperState.NOT_RUNNING
        self.is_monitoring = new_state is HelperState.RUNNING_HEALTHY
        self.transitions.append((old_state, new_state))
        for listener in self._listeners:
            listener(old_state, new_state)

    def record_alert(self, alert: DeliveredAlert) -> None:
        self.matched_count += 1
        self.recent_alerts.appendleft(alert)
        while len(self.recent_alerts) > self.recent_limit:
            self.recent_alerts.pop()
