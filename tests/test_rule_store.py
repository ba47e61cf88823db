from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from core import events
from core.models import (
    ConditionField,
    FilterRule,
    GlobalFilterMode,
    NotificationRecord,
    RuleAction,
    RuleCondition,
)
from core.rule_store import RuleStore, default_rules
from fakes import FakeBus, FakeRepository, FakeShared


def _store(repository: FakeRepository | None = None, shared: FakeShared | None = None):
    repository = repository or FakeRepository()
    shared = shared or FakeShared()
    bus = FakeBus()
    return RuleStore(repository, shared, bus), repository, shared, bus


def _rule(name: str, priority: int = 100) -> FilterRule:
    return FilterRule(
        name=name,
        priority=priority,
        conditions=(RuleCondition(ConditionField.SENDER, name),),
    )


def test_first_launch_creates_disabled_starter_rules() -> None:
    store, repository, shared, bus = _store()
    store.load()

    assert [rule.name for rule in store.rules] == ["Priority Contacts", "Urgent Keywords"]
    assert not any(rule.is_enabled for rule in store.rules)
    assert repository.saves == 1
    assert [rule.name for rule in shared.rules] == ["Priority Contacts", "Urgent Keywords"]
    assert bus.published == [events.RULES_UPDATED]


def test_load_prefers_private_store() -> None:
    private = [_rule("private")]
    repository = FakeRepository(stored=(private, GlobalFilterMode.BLACKLIST))
    shared = FakeShared()
    shared.rules = [_rule("shared")]
    store, _, _, bus = _store(repository, shared)

    store.load()
    assert [rule.name for rule in store.rules] == ["private"]
    assert store.mode is GlobalFilterMode.BLACKLIST
    assert bus.published == []


def test_load_falls_back_to_shared_rules() -> None:
    shared = FakeShared()
    shared.rules = [_rule("shared")]
    store, repository, _, _ = _store(FakeRepository(), shared)

    store.load()
    assert [rule.name for rule in store.rules] == ["shared"]
    assert repository.saves == 0


def test_every_mutation_mirrors_mode_then_rules_and_publishes() -> None:
    store, repository, shared, bus = _store()
    store.add(_rule("Mom"))
    store.set_mode(GlobalFilterMode.BLACKLIST)

    assert shared.writes == ["mode", "rules", "mode", "rules"]
    assert shared.mode is GlobalFilterMode.BLACKLIST
    assert repository.stored[1] is GlobalFilterMode.BLACKLIST
    assert bus.published == [events.RULES_UPDATED, events.RULES_UPDATED]


def test_update_and_delete_by_id() -> None:
    store, _, shared, _ = _store()
    rule = _rule("Mom")
    store.add(rule)

    renamed = FilterRule(name="Mother", conditions=rule.conditions, id=rule.id)
    assert store.update(renamed)
    assert store.get(rule.id).name == "Mother"
    assert not store.update(_rule("stranger"))

    assert store.delete(rule.id)
    assert not store.delete(rule.id)
    assert shared.rules == []


def test_toggle_flips_enabled() -> None:
    store, _, shared, _ = _store()
    rule = _rule("Mom")
    store.add(rule)

    toggled = store.toggle(rule.id)
    assert toggled is not None and not toggled.is_enabled
    assert not shared.rules[0].is_enabled
    assert store.toggle("missing") is None


def test_move_renumbers_priorities() -> None:
    store, _, shared, _ = _store()
    for name in ("a", "b", "c"):
        store.add(_rule(name, priority=50))

    store.move(2, 0)
    assert [(rule.name, rule.priority) for rule in store.rules] == [("c", 0), ("a", 1), ("b", 2)]
    assert [rule.name for rule in shared.rules] == ["c", "a", "b"]

    with pytest.raises(IndexError):
        store.move(5, 0)


def test_export_then_import_appends() -> None:
    store, _, _, _ = _store()
    store.add(_rule("Mom"))
    exported = store.export()

    assert json.loads(exported)[0]["name"] == "Mom"
    assert store.import_rules(exported)
    assert [rule.name for rule in store.rules] == ["Mom", "Mom"]


def test_invalid_import_leaves_rules_untouched() -> None:
    store, _, _, bus = _store()
    store.add(_rule("Mom"))
    published = list(bus.published)

    assert not store.import_rules("not json")
    assert not store.import_rules('{"name": "object, not array"}')
    assert not store.import_rules('[{"name": "x", "priority": "high"}]')
    assert [rule.name for rule in store.rules] == ["Mom"]
    assert bus.published == published


def test_evaluate_uses_current_mode() -> None:
    store, _, _, _ = _store()
    store.add(
        FilterRule(
            name="spam",
            action=RuleAction.BLOCK,
            conditions=(RuleCondition(ConditionField.APP, "spam.app"),),
        )
    )
    store.set_mode(GlobalFilterMode.BLACKLIST)
    record = NotificationRecord(
        bundle_id="other.app",
        title="hi",
        body="there",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        source_offset=1,
    )
    assert store.evaluate(record).action is RuleAction.NOTIFY


def test_default_rules_are_fresh_each_call() -> None:
    assert default_rules()[0].id != default_rules()[0].id
