from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from core.models import (
    ConditionField,
    FilterRule,
    GlobalFilterMode,
    LogicOperator,
    MatchType,
    NotificationRecord,
    RuleAction,
    RuleCondition,
)
from core.rules_engine import condition_matches, evaluate, ordered_rules, rule_matches


def _notification(
    *,
    bundle_id: str = "net.whatsapp.WhatsApp",
    title: str = "Mom",
    subtitle: Optional[str] = None,
    body: str = "Call me when you land",
) -> NotificationRecord:
    return NotificationRecord(
        bundle_id=bundle_id,
        title=title,
        subtitle=subtitle,
        body=body,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        source_offset=1,
    )


def _app_rule(name: str, app: str, *, priority: int = 100, action=RuleAction.NOTIFY) -> FilterRule:
    return FilterRule(
        name=name,
        action=action,
        priority=priority,
        conditions=(RuleCondition(ConditionField.APP, app, MatchType.EQUALS),),
    )


def test_evaluate_is_deterministic() -> None:
    rules = [
        _app_rule("a", "net.whatsapp.WhatsApp", priority=5),
        _app_rule("b", "net.whatsapp.WhatsApp", priority=5, action=RuleAction.BLOCK),
    ]
    notification = _notification()
    results = {evaluate(notification, rules, GlobalFilterMode.WHITELIST) for _ in range(20)}
    assert len(results) == 1


def test_lower_priority_value_wins() -> None:
    rules = [
        _app_rule("second", "net.whatsapp.WhatsApp", priority=2, action=RuleAction.BLOCK),
        _app_rule("first", "net.whatsapp.WhatsApp", priority=1),
    ]
    result = evaluate(_notification(), rules, GlobalFilterMode.WHITELIST)
    assert result.matched_rule_name == "first"
    assert result.action is RuleAction.NOTIFY


def test_equal_priorities_keep_store_order() -> None:
    rules = [
        _app_rule("earlier", "net.whatsapp.WhatsApp", priority=3),
        _app_rule("later", "net.whatsapp.WhatsApp", priority=3),
    ]
    assert evaluate(_notification(), rules, GlobalFilterMode.WHITELIST).matched_rule_name == "earlier"
    assert [rule.name for rule in ordered_rules(rules)] == ["earlier", "later"]


def test_disabled_rules_are_skipped() -> None:
    disabled = FilterRule(
        name="off",
        priority=0,
        is_enabled=False,
        conditions=(RuleCondition(ConditionField.SENDER, "mom"),),
    )
    result = evaluate(_notification(), [disabled], GlobalFilterMode.BLACKLIST)
    assert result.was_default


def test_and_requires_every_condition() -> None:
    rule = FilterRule(
        name="mom urgent",
        logic_operator=LogicOperator.AND,
        conditions=(
            RuleCondition(ConditionField.SENDER, "mom"),
            RuleCondition(ConditionField.KEYWORD, "urgent"),
        ),
    )
    assert not rule_matches(rule, _notification())
    assert rule_matches(rule, _notification(body="URGENT: call me"))


def test_or_requires_any_condition() -> None:
    rule = FilterRule(
        name="parents",
        logic_operator=LogicOperator.OR,
        conditions=(
            RuleCondition(ConditionField.SENDER, "Mom"),
            RuleCondition(ConditionField.SENDER, "Dad"),
        ),
    )
    assert rule_matches(rule, _notification(title="Dad"))
    assert not rule_matches(rule, _notification(title="Boss"))


def test_rule_without_conditions_never_matches() -> None:
    for operator in LogicOperator:
        rule = FilterRule(name="empty", logic_operator=operator)
        assert not rule_matches(rule, _notification())


def test_global_default_by_mode() -> None:
    whitelist = evaluate(_notification(), [], GlobalFilterMode.WHITELIST)
    assert whitelist.action is RuleAction.BLOCK
    assert whitelist.was_default
    assert whitelist.matched_rule_name is None

    blacklist = evaluate(_notification(), [], GlobalFilterMode.BLACKLIST)
    assert blacklist.action is RuleAction.NOTIFY
    assert blacklist.was_default


def test_blocking_app_rule_in_blacklist_mode() -> None:
    rules = [_app_rule("spam", "spam.app", priority=1, action=RuleAction.BLOCK)]

    blocked = evaluate(_notification(bundle_id="spam.app"), rules, GlobalFilterMode.BLACKLIST)
    assert blocked.action is RuleAction.BLOCK
    assert not blocked.was_default
    assert blocked.matched_rule_name == "spam"

    other = evaluate(_notification(bundle_id="other.app"), rules, GlobalFilterMode.BLACKLIST)
    assert other.action is RuleAction.NOTIFY
    assert other.was_default


def test_keyword_field_reads_title_subtitle_and_body() -> None:
    condition = RuleCondition(ConditionField.KEYWORD, "family chat")
    assert condition_matches(condition, _notification(subtitle="Family Chat", body="hi"))
    assert not condition_matches(condition, _notification(body="hi"))


def test_case_sensitivity() -> None:
    insensitive = RuleCondition(ConditionField.SENDER, "MOM", MatchType.EQUALS)
    sensitive = RuleCondition(ConditionField.SENDER, "MOM", MatchType.EQUALS, is_case_sensitive=True)
    assert condition_matches(insensitive, _notification(title="Mom"))
    assert not condition_matches(sensitive, _notification(title="Mom"))


def test_match_types() -> None:
    notification = _notification(title="Alice Smith")

    def check(match_type: MatchType, value: str) -> bool:
        return condition_matches(RuleCondition(ConditionField.SENDER, value, match_type), notification)

    assert check(MatchType.STARTS_WITH, "alice")
    assert check(MatchType.ENDS_WITH, "smith")
    assert check(MatchType.NOT_EQUALS, "bob")
    assert check(MatchType.NOT_CONTAINS, "bob")
    assert not check(MatchType.NOT_CONTAINS, "smi")
    assert not check(MatchType.EQUALS, "alice")
