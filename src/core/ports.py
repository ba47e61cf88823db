"""Ports (interfaces) used by the core.

Ports define the minimal contracts for the bus, shared files, process
control, alert delivery and the notification source so the core can run
against real OS facilities or in-memory fakes.
"""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Protocol, Tuple, Union

from core.models import (
    AlertPayload,
    FilterRule,
    GlobalFilterMode,
    MatchedNotification,
    NotificationRecord,
)

# Handlers may be plain callables or coroutine functions; coroutines are
# scheduled on the subscriber's event loop.
EventHandler = Callable[[], Union[None, Awaitable[None]]]


class BusPort(Protocol):
    """Zero-payload, at-most-once named events between processes."""

    def publish(self, name: str) -> None:
        ...

    def subscribe(self, name: str, handler: EventHandler) -> None:
        ...

    def unsubscribe(self, name: str) -> None:
        ...


class SharedStatePort(Protocol):
    """Files both processes exchange state through."""

    def save_rules(self, rules: List[FilterRule]) -> None:
        ...

    def load_rules(self) -> List[FilterRule]:
        ...

    def save_mode(self, mode: GlobalFilterMode) -> None:
        ...

    def load_mode(self) -> GlobalFilterMode:
        ...

    def read_matches(self) -> List[MatchedNotification]:
        ...

    def append_matches(self, matches: List[MatchedNotification]) -> None:
        ...

    def clear_matches(self) -> None:
        ...

    def touch_heartbeat(self) -> None:
        ...

    def heartbeat_age(self, now: float) -> Optional[float]:
        ...

    def read_pid(self) -> Optional[int]:
        ...

    def write_pid(self, pid: int) -> None:
        ...

    def clear_pid(self) -> None:
        ...

    def load_offset(self) -> int:
        ...

    def save_offset(self, offset: int) -> None:
        ...


class RuleRepositoryPort(Protocol):
    """Private persistence for the foreground rule store."""

    def load(self) -> Optional[Tuple[List[FilterRule], GlobalFilterMode]]:
        ...

    def save(self, rules: List[FilterRule], mode: GlobalFilterMode) -> None:
        ...


class SpawnerPort(Protocol):
    """Starts the helper with elevated privileges and returns its pid."""

    def spawn(self) -> int:
        ...


class ProcessProbePort(Protocol):
    """Liveness probe and termination for a recorded pid."""

    def is_alive(self, pid: int) -> bool:
        ...

    def terminate(self, pid: int) -> None:
        ...


class AlertNotifierPort(Protocol):
    """Delivers alerts; raises on rejection."""

    async def deliver(self, payload: AlertPayload) -> None:
        ...

    async def check_authorization(self) -> Tuple[bool, bool]:
        ...


class NotificationSourcePort(Protocol):
    """Produces notification records past a given source offset."""

    def read_since(self, offset: int) -> List[NotificationRecord]:
        ...


class WakeSchedulerPort(Protocol):
    """Periodic wake facility: runs a callback once after a delay."""

    def schedule(self, delay: float, callback: EventHandler) -> None:
        ...

    def cancel(self) -> None:
        ...
