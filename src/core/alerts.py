"""Critical alert dispatch with content-level deduplication."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Optional, Set

from core.config import DedupConfig
from core.dedup import DedupCache, compute_fingerprint
from core.known_apps import KnownApp, find_app
from core.models import AlertPayload, new_id
from core.ports import AlertNotifierPort
from core.state import AppState, DeliveredAlert

LOGGER = logging.getLogger(__name__)

TEST_BUNDLE_ID = "com.notifilter.test"


class SendOutcome(str, Enum):
    DISPATCHED = "dispatched"
    SKIPPED_DUPLICATE = "skipped-duplicate"


class AlertSender:
    """Turns matched notifications into critical alerts.

    Delivery is fire-and-forget: `send` schedules the notifier on the running
    loop and returns. The completion step records the fingerprint and bumps
    the matched counter only when delivery succeeded, so a failed alert is
    retried the next time the same content shows up.
    """

    def __init__(
        self,
        notifier: AlertNotifierPort,
        state: AppState,
        dedup_config: DedupConfig = DedupConfig(),
        clock: Callable[[], float] = time.time,
        app_lookup: Callable[[str], Optional[KnownApp]] = find_app,
    ) -> None:
        self._notifier = notifier
        self._state = state
        self._clock = clock
        self._app_lookup = app_lookup
        self.cache = DedupCache(dedup_config.window_seconds, clock=clock)
        self._pending: Set[asyncio.Task] = set()
        self._in_flight: Set[str] = set()

    def build_payload(self, title: str, body: str, bundle_id: str, rule_name: str) -> AlertPayload:
        app = self._app_lookup(bundle_id)
        return AlertPayload(
            identifier=f"notifilter-{new_id()}",
            title=title,
            body=body,
            subtitle=f"via {app.name}" if app else None,
            thread_id=bundle_id,
            interrupt_when_silenced=True,
            metadata={
                "originalBundleId": bundle_id,
                "matchedRuleName": rule_name,
                "timestamp": self._clock(),
            },
        )

    def send(self, title: str, body: str, bundle_id: str, rule_name: str) -> SendOutcome:
        """Dispatch one alert unless the same content was alerted recently.

        Must be called from the foreground event loop.
        """

        fingerprint = compute_fingerprint(bundle_id, title, body)
        try:
            if fingerprint in self._in_flight or self.cache.should_suppress(fingerprint):
                LOGGER.info("Skipping duplicate alert from %s (%s)", bundle_id, rule_name)
                return SendOutcome.SKIPPED_DUPLICATE

            payload = self.build_payload(title, body, bundle_id, rule_name)
            self._in_flight.add(fingerprint)
            task = asyncio.get_running_loop().create_task(
                self._deliver(payload, fingerprint, rule_name)
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return SendOutcome.DISPATCHED
        finally:
            self.cache.evict()

    async def _deliver(self, payload: AlertPayload, fingerprint: str, rule_name: str) -> None:
        try:
            await self._notifier.deliver(payload)
        except Exception:
            LOGGER.exception("Failed to send critical alert for %r", payload.title)
            return
        finally:
            self._in_flight.discard(fingerprint)

        self.cache.record(fingerprint)
        self._state.record_alert(
            DeliveredAlert(
                title=payload.title,
                bundle_id=payload.thread_id,
                rule_name=rule_name,
                timestamp=self._clock(),
            )
        )
        LOGGER.info("Critical alert sent for %r (%s)", payload.title, rule_name)

    async def wait_idle(self) -> None:
        """Wait for every dispatched alert to finish."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def send_test_alert(self) -> SendOutcome:
        return self.send(
            title="Test Notification",
            body="This is a test critical alert from notifilter. "
            "It should get through even in Do Not Disturb mode.",
            bundle_id=TEST_BUNDLE_ID,
            rule_name="Test Rule",
        )

    async def check_authorization(self) -> tuple[bool, bool]:
        return await self._notifier.check_authorization()
