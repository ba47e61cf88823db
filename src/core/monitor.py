"""Helper-side monitoring pipeline.

Runs inside the privileged process. The order per scan is strict:
1) Read records past the last processed source offset
2) Evaluate each one against the current rule set
3) Append `notify` results to the shared match queue
4) Persist the new offset
5) Publish `matched` if anything was queued

The raw notification source is a port; this module only coordinates.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import List, Optional

from core import events
from core.config import HelperConfig
from core.models import (
    FilterRule,
    GlobalFilterMode,
    MatchedNotification,
    NotificationRecord,
    RuleAction,
)
from core.ports import BusPort, NotificationSourcePort, SharedStatePort
from core.rules_engine import evaluate

LOGGER = logging.getLogger(__name__)

DEFAULT_RULE_NAME = "Default"


class NotificationMonitor:
    def __init__(
        self,
        shared: SharedStatePort,
        bus: BusPort,
        source: NotificationSourcePort,
        config: HelperConfig = HelperConfig(),
    ) -> None:
        self._shared = shared
        self._bus = bus
        self._source = source
        self._config = config
        self._rules: List[FilterRule] = []
        self._mode = GlobalFilterMode.WHITELIST
        self._monitoring = False
        self._tasks: List[asyncio.Task] = []
        self._stopped: Optional[asyncio.Event] = None

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    def reload_rules(self) -> None:
        """Replace the rule set wholesale from the shared files."""

        self._mode = self._shared.load_mode()
        self._rules = self._shared.load_rules()
        LOGGER.info("Reloaded %s rules (%s mode)", len(self._rules), self._mode.value)

    def _to_match(self, record: NotificationRecord) -> Optional[MatchedNotification]:
        result = evaluate(record, self._rules, self._mode)
        if result.action is not RuleAction.NOTIFY:
            return None
        return MatchedNotification(
            bundle_id=record.bundle_id,
            title=record.title,
            subtitle=record.subtitle,
            body=record.body,
            matched_rule_name=result.matched_rule_name or DEFAULT_RULE_NAME,
            timestamp=record.timestamp,
        )

    def scan(self) -> int:
        """Process new source records and return how many were queued."""

        last_offset = self._shared.load_offset()
        records = [r for r in self._source.read_since(last_offset) if r.source_offset > last_offset]
        if not records:
            return 0

        matches = []
        for record in records:
            try:
                match = self._to_match(record)
            except (TypeError, ValueError):
                LOGGER.exception("Skipping record at offset %s", record.source_offset)
                continue
            if match is not None:
                matches.append(match)
        if matches:
            self._shared.append_matches(matches)

        # Offset is saved after queueing so a crash re-reads rather than drops.
        self._shared.save_offset(max(record.source_offset for record in records))

        if matches:
            self._bus.publish(events.MATCHED)
            LOGGER.info("Queued %s of %s notifications", len(matches), len(records))
        return len(matches)

    def heartbeat(self) -> None:
        self._shared.touch_heartbeat()
        self._bus.publish(events.HEARTBEAT)

    def start_monitoring(self) -> None:
        if not self._monitoring:
            LOGGER.info("Monitoring started")
        self._monitoring = True
        self.heartbeat()

    def stop_monitoring(self) -> None:
        if self._monitoring:
            LOGGER.info("Monitoring stopped")
        self._monitoring = False

    async def _scan_loop(self) -> None:
        while True:
            if self._monitoring:
                try:
                    self.scan()
                except Exception:
                    LOGGER.exception("Scan failed")
            await asyncio.sleep(self._config.scan_interval)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.heartbeat_interval)
            if self._monitoring:
                try:
                    self.heartbeat()
                except OSError:
                    LOGGER.exception("Heartbeat failed")

    async def run(self) -> None:
        """Run until `request_exit` is called (SIGTERM/SIGINT in the daemon)."""

        self._stopped = asyncio.Event()
        self._shared.write_pid(os.getpid())
        self.reload_rules()
        self._bus.subscribe(events.RULES_UPDATED, self.reload_rules)
        self._bus.subscribe(events.START, self.start_monitoring)
        self._bus.subscribe(events.STOP, self.stop_monitoring)
        self.start_monitoring()

        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._scan_loop()),
            loop.create_task(self._heartbeat_loop()),
        ]
        try:
            await self._stopped.wait()
        finally:
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            for name in (events.RULES_UPDATED, events.START, events.STOP):
                self._bus.unsubscribe(name)
            if self._shared.read_pid() == os.getpid():
                self._shared.clear_pid()
            LOGGER.info("Helper exiting")

    def request_exit(self) -> None:
        self.stop_monitoring()
        if self._stopped is not None:
            self._stopped.set()
