"""Foreground rule store: the single source of truth for rules and mode.

Every mutation is persisted privately and then projected one way to the
shared files the helper reads, followed by a `rules-updated` event.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from typing import List, Optional

from core import events
from core.models import (
    ConditionField,
    EvaluationResult,
    FilterRule,
    GlobalFilterMode,
    LogicOperator,
    MatchType,
    NotificationRecord,
    RuleAction,
    RuleCondition,
)
from core.ports import BusPort, RuleRepositoryPort, SharedStatePort
from core.rules_engine import evaluate
from core.serialization import build_rules, rules_to_list

LOGGER = logging.getLogger(__name__)


def default_rules() -> List[FilterRule]:
    """Starter rules, disabled so users can customize them first."""

    return [
        FilterRule(
            name="Priority Contacts",
            action=RuleAction.NOTIFY,
            conditions=(
                RuleCondition(ConditionField.SENDER, "Mom", MatchType.CONTAINS),
                RuleCondition(ConditionField.SENDER, "Dad", MatchType.CONTAINS),
            ),
            logic_operator=LogicOperator.OR,
            is_enabled=False,
        ),
        FilterRule(
            name="Urgent Keywords",
            action=RuleAction.NOTIFY,
            conditions=(
                RuleCondition(ConditionField.KEYWORD, "urgent", MatchType.CONTAINS),
                RuleCondition(ConditionField.KEYWORD, "emergency", MatchType.CONTAINS),
                RuleCondition(ConditionField.KEYWORD, "ASAP", MatchType.CONTAINS),
            ),
            logic_operator=LogicOperator.OR,
            is_enabled=False,
        ),
    ]


class RuleStore:
    def __init__(
        self,
        repository: RuleRepositoryPort,
        shared: SharedStatePort,
        bus: BusPort,
    ) -> None:
        self._repository = repository
        self._shared = shared
        self._bus = bus
        self._rules: List[FilterRule] = []
        self._mode = GlobalFilterMode.WHITELIST

    @property
    def rules(self) -> List[FilterRule]:
        return list(self._rules)

    @property
    def mode(self) -> GlobalFilterMode:
        return self._mode

    def load(self) -> None:
        """Load private store, then the shared file, then starter rules."""

        stored = self._repository.load()
        if stored is not None:
            self._rules, self._mode = list(stored[0]), stored[1]

        if not self._rules:
            self._rules = self._shared.load_rules()

        if not self._rules:
            LOGGER.info("No rules found, creating starter rules")
            self._rules = default_rules()
            self._save()

        LOGGER.info("%s rules are loaded (%s mode)", len(self._rules), self._mode.value)

    def get(self, rule_id: str) -> Optional[FilterRule]:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def _index_of(self, rule_id: str) -> Optional[int]:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return index
        return None

    def add(self, rule: FilterRule) -> None:
        self._rules.append(rule)
        self._save()

    def update(self, rule: FilterRule) -> bool:
        index = self._index_of(rule.id)
        if index is None:
            return False
        self._rules[index] = rule
        self._save()
        return True

    def delete(self, rule_id: str) -> bool:
        index = self._index_of(rule_id)
        if index is None:
            return False
        del self._rules[index]
        self._save()
        return True

    def toggle(self, rule_id: str) -> Optional[FilterRule]:
        index = self._index_of(rule_id)
        if index is None:
            return None
        rule = self._rules[index]
        self._rules[index] = dataclasses.replace(rule, is_enabled=not rule.is_enabled)
        self._save()
        return self._rules[index]

    def move(self, from_index: int, to_index: int) -> None:
        """Move one rule and renumber priorities to match list order."""

        if not 0 <= from_index < len(self._rules):
            raise IndexError(f"No rule at position {from_index}")
        rule = self._rules.pop(from_index)
        to_index = max(0, min(to_index, len(self._rules)))
        self._rules.insert(to_index, rule)
        self._rules = [
            dataclasses.replace(item, priority=index) for index, item in enumerate(self._rules)
        ]
        self._save()

    def set_mode(self, mode: GlobalFilterMode) -> None:
        self._mode = mode
        self._save()

    def evaluate(self, notification: NotificationRecord) -> EvaluationResult:
        return evaluate(notification, self._rules, self._mode)

    def export(self) -> str:
        return json.dumps(rules_to_list(self._rules), indent=2)

    def import_rules(self, text: str) -> bool:
        """Append rules from an exported JSON array; all or nothing."""

        try:
            imported = build_rules(json.loads(text))
        except ValueError:
            LOGGER.warning("Rejected rule import: not a valid rules document")
            return False
        self._rules.extend(imported)
        self._save()
        return True

    def _save(self) -> None:
        self._repository.save(self._rules, self._mode)
        # The mode file goes first so a reload triggered by the rules file
        # always sees the matching mode.
        self._shared.save_mode(self._mode)
        self._shared.save_rules(self._rules)
        self._bus.publish(events.RULES_UPDATED)
