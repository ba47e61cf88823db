"""Rule ordering and matching logic (core domain).

Everything here is a pure function of its inputs so both processes can
evaluate the same rule file and reach the same answer.
"""

from __future__ import annotations

from typing import Iterable, List

from core.models import (
    ConditionField,
    EvaluationResult,
    FilterRule,
    GlobalFilterMode,
    LogicOperator,
    MatchType,
    NotificationRecord,
    RuleCondition,
)


def field_text(condition_field: ConditionField, notification: NotificationRecord) -> str:
    """Return the notification text a condition field reads."""

    if condition_field is ConditionField.SENDER:
        return notification.title
    if condition_field is ConditionField.KEYWORD:
        return " ".join([notification.title, notification.subtitle or "", notification.body])
    return notification.bundle_id


def condition_matches(condition: RuleCondition, notification: NotificationRecord) -> bool:
    text = field_text(condition.field, notification)
    target = condition.value
    if not condition.is_case_sensitive:
        text = text.lower()
        target = target.lower()

    match_type = condition.match_type
    if match_type is MatchType.EQUALS:
        return text == target
    if match_type is MatchType.CONTAINS:
        return target in text
    if match_type is MatchType.STARTS_WITH:
        return text.startswith(target)
    if match_type is MatchType.ENDS_WITH:
        return text.endswith(target)
    if match_type is MatchType.NOT_EQUALS:
        return text != target
    if match_type is MatchType.NOT_CONTAINS:
        return target not in text
    raise ValueError(f"Unsupported match type: {match_type}")


def rule_matches(rule: FilterRule, notification: NotificationRecord) -> bool:
    """Combine a rule's conditions with its logic operator.

    A rule without conditions never matches. `all`/`any` short-circuit.
    """

    if not rule.conditions:
        return False
    results = (condition_matches(condition, notification) for condition in rule.conditions)
    if rule.logic_operator is LogicOperator.AND:
        return all(results)
    return any(results)


def ordered_rules(rules: Iterable[FilterRule]) -> List[FilterRule]:
    """Return enabled rules in evaluation order.

    The order is (priority, position in the store); `sorted` is stable, so
    equal priorities keep their store order.
    """

    return sorted((rule for rule in rules if rule.is_enabled), key=lambda rule: rule.priority)


def evaluate(
    notification: NotificationRecord,
    rules: Iterable[FilterRule],
    mode: GlobalFilterMode,
) -> EvaluationResult:
    """Return the result of the first matching enabled rule, or the global default."""

    for rule in ordered_rules(rules):
        if rule_matches(rule, notification):
            return EvaluationResult.matched(rule)
    return EvaluationResult.default(mode)
