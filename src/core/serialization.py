"""Wire format shared by the foreground app and the helper.

Keys are camelCase to match the JSON files both processes read. Decoders
raise ValueError on any malformed element; callers discard the whole
document rather than act on half of it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, List

from core.models import (
    ConditionField,
    FilterRule,
    GlobalFilterMode,
    LogicOperator,
    MatchedNotification,
    MatchType,
    RuleAction,
    RuleCondition,
    new_id,
)


def _require(raw: dict, key: str) -> Any:
    if key not in raw:
        raise ValueError(f"Missing key: {key}")
    return raw[key]


def _as_dict(raw: Any, what: str) -> dict:
    if not isinstance(raw, dict):
        raise ValueError(f"Expected an object for {what}, got {type(raw).__name__}")
    return raw


def condition_to_dict(condition: RuleCondition) -> dict:
    return {
        "id": condition.id,
        "field": condition.field.value,
        "matchType": condition.match_type.value,
        "value": condition.value,
        "isCaseSensitive": condition.is_case_sensitive,
    }


def condition_from_dict(raw: Any) -> RuleCondition:
    raw = _as_dict(raw, "condition")
    return RuleCondition(
        id=str(raw.get("id") or new_id()),
        field=ConditionField(_require(raw, "field")),
        match_type=MatchType(raw.get("matchType", MatchType.CONTAINS.value)),
        value=str(_require(raw, "value")),
        is_case_sensitive=bool(raw.get("isCaseSensitive", False)),
    )


def rule_to_dict(rule: FilterRule) -> dict:
    return {
        "id": rule.id,
        "name": rule.name,
        "isEnabled": rule.is_enabled,
        "priority": rule.priority,
        "action": rule.action.value,
        "conditions": [condition_to_dict(condition) for condition in rule.conditions],
        "logicOperator": rule.logic_operator.value,
    }


def rule_from_dict(raw: Any) -> FilterRule:
    raw = _as_dict(raw, "rule")
    conditions = raw.get("conditions", [])
    if not isinstance(conditions, list):
        raise ValueError("conditions must be a list")
    priority = raw.get("priority", 100)
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ValueError(f"priority must be an integer, got {priority!r}")
    return FilterRule(
        id=str(raw.get("id") or new_id()),
        name=str(_require(raw, "name")),
        is_enabled=bool(raw.get("isEnabled", True)),
        priority=priority,
        action=RuleAction(raw.get("action", RuleAction.NOTIFY.value)),
        conditions=tuple(condition_from_dict(item) for item in conditions),
        logic_operator=LogicOperator(raw.get("logicOperator", LogicOperator.AND.value)),
    )


def build_rules(raw_rules: Any) -> List[FilterRule]:
    """Decode a JSON array of rules, preserving file order."""

    if not isinstance(raw_rules, list):
        raise ValueError("Rules document must be a JSON array")
    return [rule_from_dict(item) for item in raw_rules]


def rules_to_list(rules: Iterable[FilterRule]) -> List[dict]:
    return [rule_to_dict(rule) for rule in rules]


def mode_from_value(raw: Any) -> GlobalFilterMode:
    return GlobalFilterMode(raw)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""

    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def match_to_dict(match: MatchedNotification) -> dict:
    data = {
        "bundleId": match.bundle_id,
        "title": match.title,
        "body": match.body,
        "matchedRuleName": match.matched_rule_name,
        "timestamp": format_timestamp(match.timestamp),
    }
    if match.subtitle is not None:
        data["subtitle"] = match.subtitle
    return data


def match_from_dict(raw: Any) -> MatchedNotification:
    raw = _as_dict(raw, "matched notification")
    subtitle = raw.get("subtitle")
    return MatchedNotification(
        bundle_id=str(_require(raw, "bundleId")),
        title=str(_require(raw, "title")),
        subtitle=str(subtitle) if subtitle is not None else None,
        body=str(_require(raw, "body")),
        matched_rule_name=str(_require(raw, "matchedRuleName")),
        timestamp=parse_timestamp(_require(raw, "timestamp")),
    )


def decode_matches(raw_matches: Any) -> List[MatchedNotification]:
    if not isinstance(raw_matches, list):
        raise ValueError("Match queue must be a JSON array")
    return [match_from_dict(item) for item in raw_matches]
