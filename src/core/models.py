"""Core domain models.

These dataclasses are shared by both processes and the adapters so neither
side depends on integration-specific types. Enum values double as the wire
values used in the shared JSON files.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from core.dedup import compute_fingerprint


class ConditionField(str, Enum):
    SENDER = "sender"
    KEYWORD = "keyword"
    APP = "app"


class MatchType(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    NOT_EQUALS = "notEquals"
    NOT_CONTAINS = "notContains"


class LogicOperator(str, Enum):
    AND = "and"
    OR = "or"


class RuleAction(str, Enum):
    NOTIFY = "notify"
    BLOCK = "block"


class GlobalFilterMode(str, Enum):
    """Fallback applied when no rule matches.

    whitelist: only notify for notifications that match a rule.
    blacklist: notify for everything except what a blocking rule matches.
    """

    WHITELIST = "whitelist"
    BLACKLIST = "blacklist"

    @property
    def default_action(self) -> RuleAction:
        return RuleAction.BLOCK if self is GlobalFilterMode.WHITELIST else RuleAction.NOTIFY


def new_id() -> str:
    return str(uuid.uuid4()).upper()


@dataclass(frozen=True)
class RuleCondition:
    """One comparison against a field of a notification."""

    field: ConditionField
    value: str
    match_type: MatchType = MatchType.CONTAINS
    is_case_sensitive: bool = False
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class FilterRule:
    """User-defined rule. Lower priority values are evaluated first."""

    name: str
    action: RuleAction = RuleAction.NOTIFY
    conditions: tuple[RuleCondition, ...] = ()
    logic_operator: LogicOperator = LogicOperator.AND
    is_enabled: bool = True
    priority: int = 100
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class NotificationRecord:
    """Immutable snapshot of one notification observed by the helper."""

    bundle_id: str
    title: str
    body: str
    timestamp: datetime
    source_offset: int
    subtitle: Optional[str] = None
    apple_id: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        return compute_fingerprint(self.bundle_id, self.title, self.body, self.subtitle)


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of running a notification through the rule set."""

    action: RuleAction
    matched_rule_name: Optional[str]
    matched_rule_id: Optional[str]
    was_default: bool

    @classmethod
    def matched(cls, rule: FilterRule) -> "EvaluationResult":
        return cls(
            action=rule.action,
            matched_rule_name=rule.name,
            matched_rule_id=rule.id,
            was_default=False,
        )

    @classmethod
    def default(cls, mode: GlobalFilterMode) -> "EvaluationResult":
        return cls(
            action=mode.default_action,
            matched_rule_name=None,
            matched_rule_id=None,
            was_default=True,
        )


@dataclass(frozen=True)
class MatchedNotification:
    """One entry of the shared match queue."""

    bundle_id: str
    title: str
    body: str
    matched_rule_name: str
    timestamp: datetime
    subtitle: Optional[str] = None


@dataclass(frozen=True)
class AlertPayload:
    """Everything an alert notifier needs to deliver one critical alert."""

    identifier: str
    title: str
    body: str
    subtitle: Optional[str]
    thread_id: str
    interrupt_when_silenced: bool
    metadata: dict = field(default_factory=dict)
