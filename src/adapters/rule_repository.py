"""Private JSON persistence for the foreground rule store."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from adapters.shared_files import read_json, write_json_atomic
from core.models import FilterRule, GlobalFilterMode
from core.serialization import build_rules, mode_from_value, rules_to_list

LOGGER = logging.getLogger(__name__)


class JsonRuleRepository:
    """Stores `{"globalMode": ..., "rules": [...]}` in one private file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def load(self) -> Optional[Tuple[List[FilterRule], GlobalFilterMode]]:
        raw = read_json(self._path)
        if raw is None:
            return None
        try:
            return build_rules(raw["rules"]), mode_from_value(raw["globalMode"])
        except (KeyError, TypeError, ValueError):
            LOGGER.warning("Private rule store %s is malformed, ignoring it", self._path)
            return None

    def save(self, rules: List[FilterRule], mode: GlobalFilterMode) -> None:
        payload = {"globalMode": mode.value, "rules": rules_to_list(rules)}
        write_json_atomic(self._path, payload, mode=0o600)
