from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from core import events
from core.config import HelperConfig
from core.models import (
    ConditionField,
    FilterRule,
    GlobalFilterMode,
    MatchType,
    NotificationRecord,
    RuleAction,
    RuleCondition,
)
from core.monitor import DEFAULT_RULE_NAME, NotificationMonitor
from fakes import FakeBus, FakeShared


class FakeSource:
    def __init__(self) -> None:
        self.records: list[NotificationRecord] = []

    def add(self, bundle_id: str, title: str, body: str = "body") -> None:
        self.records.append(
            NotificationRecord(
                bundle_id=bundle_id,
                title=title,
                body=body,
                timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
                source_offset=len(self.records) + 1,
            )
        )

    def read_since(self, offset: int) -> list[NotificationRecord]:
        return [record for record in self.records if record.source_offset > offset]


def _monitor(rules, mode=GlobalFilterMode.WHITELIST, config=HelperConfig()):
    shared = FakeShared()
    shared.rules = list(rules)
    shared.mode = mode
    bus = FakeBus()
    source = FakeSource()
    monitor = NotificationMonitor(shared, bus, source, config)
    monitor.reload_rules()
    return monitor, shared, bus, source


MOM_RULE = FilterRule(
    name="Family",
    conditions=(RuleCondition(ConditionField.SENDER, "Mom", MatchType.EQUALS),),
)
SPAM_RULE = FilterRule(
    name="spam",
    action=RuleAction.BLOCK,
    priority=1,
    conditions=(RuleCondition(ConditionField.APP, "spam.app", MatchType.EQUALS),),
)


def test_notify_results_are_queued_and_announced() -> None:
    monitor, shared, bus, source = _monitor([MOM_RULE])
    source.add("com.apple.MobileSMS", "Mom", "call me")
    source.add("com.apple.MobileSMS", "Boss", "meeting")

    assert monitor.scan() == 1
    assert [(m.title, m.matched_rule_name) for m in shared.matches] == [("Mom", "Family")]
    assert shared.offset == 2
    assert bus.published == [events.MATCHED]


def test_processed_records_are_not_rescanned() -> None:
    monitor, shared, bus, source = _monitor([MOM_RULE])
    source.add("com.apple.MobileSMS", "Mom")
    monitor.scan()

    assert monitor.scan() == 0
    assert len(shared.matches) == 1
    assert bus.published == [events.MATCHED]


def test_nothing_matched_advances_offset_without_event() -> None:
    monitor, shared, bus, source = _monitor([MOM_RULE])
    source.add("com.apple.MobileSMS", "Boss")

    assert monitor.scan() == 0
    assert shared.matches == []
    assert shared.offset == 1
    assert bus.published == []


def test_blacklist_default_is_queued_under_default_name() -> None:
    monitor, shared, _, source = _monitor([SPAM_RULE], GlobalFilterMode.BLACKLIST)
    source.add("spam.app", "WIN A PRIZE")
    source.add("other.app", "Hello")

    assert monitor.scan() == 1
    assert [(m.bundle_id, m.matched_rule_name) for m in shared.matches] == [
        ("other.app", DEFAULT_RULE_NAME)
    ]


def test_reload_replaces_rule_set() -> None:
    monitor, shared, _, source = _monitor([MOM_RULE])
    shared.rules = []
    shared.mode = GlobalFilterMode.BLACKLIST
    monitor.reload_rules()

    assert monitor.rule_count == 0
    source.add("com.apple.MobileSMS", "Anyone")
    assert monitor.scan() == 1


def test_heartbeat_touches_file_and_publishes() -> None:
    monitor, shared, bus, _ = _monitor([])
    monitor.heartbeat()

    assert shared.heartbeat_age(shared.clock()) == 0
    assert bus.published == [events.HEARTBEAT]


def test_start_and_stop_toggle_monitoring() -> None:
    monitor, _, bus, _ = _monitor([])
    monitor.start_monitoring()
    assert monitor.is_monitoring
    assert bus.published == [events.HEARTBEAT]

    monitor.stop_monitoring()
    assert not monitor.is_monitoring


def test_run_subscribes_and_cleans_up() -> None:
    monitor, shared, bus, _ = _monitor([])

    async def scenario() -> None:
        task = asyncio.get_running_loop().create_task(monitor.run())
        await asyncio.sleep(0)
        assert set(bus.handlers) == {events.RULES_UPDATED, events.START, events.STOP}
        assert shared.pid is not None
        assert monitor.is_monitoring
        monitor.request_exit()
        await task

    asyncio.run(scenario())
    assert bus.handlers == {}
    assert shared.pid is None
    assert not monitor.is_monitoring


KEYWORD_RULE = FilterRule(
    name="Urgent",
    conditions=(RuleCondition(ConditionField.KEYWORD, "urgent"),),
)


def test_record_that_fails_evaluation_is_skipped() -> None:
    monitor, shared, bus, source = _monitor([KEYWORD_RULE])
    source.records.append(
        NotificationRecord(
            bundle_id="a",
            title="broken",
            subtitle=5,
            body="urgent",
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            source_offset=1,
        )
    )
    source.add("b", "fine", "urgent please")

    assert monitor.scan() == 1
    assert [m.title for m in shared.matches] == ["fine"]
    assert shared.offset == 2
    assert bus.published == [events.MATCHED]


def test_scan_loop_survives_unexpected_errors() -> None:
    monitor, shared, _, source = _monitor(
        [KEYWORD_RULE], config=HelperConfig(heartbeat_interval=30, scan_interval=0.01)
    )
    calls = []

    def flaky_read(offset: int):
        calls.append(offset)
        if len(calls) == 1:
            raise RuntimeError("source exploded")
        return FakeSource.read_since(source, offset)

    source.read_since = flaky_read
    source.add("b", "fine", "urgent please")
    monitor.start_monitoring()

    async def scenario() -> None:
        task = asyncio.get_running_loop().create_task(monitor._scan_loop())
        await asyncio.sleep(0.05)
        assert not task.done()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    asyncio.run(scenario())
    assert len(calls) >= 2
    assert [m.title for m in shared.matches] == ["fine"]
