"""Shared file storage adapter.

Implements the core SharedStatePort on plain files. There is no file
locking: every JSON write goes to a temp file in the same directory and is
renamed over the target, so readers see either the old or the new content.
Unreadable or corrupt files read as empty.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, List, Optional

from core.models import FilterRule, GlobalFilterMode, MatchedNotification
from core.serialization import (
    build_rules,
    decode_matches,
    match_to_dict,
    mode_from_value,
    rules_to_list,
)

LOGGER = logging.getLogger(__name__)

RULES_FILE = "rules.json"
MODE_FILE = "mode.json"
MATCHED_FILE = "matched.json"
PROCESSED_FILE = "processed.json"
PID_FILE = "notifilter.pid"
HEARTBEAT_FILE = "notifilter.heartbeat"

_MISSING = object()


def read_json(path: Path, default: Any = None) -> Any:
    """Load JSON from *path*, returning *default* when missing or corrupt."""

    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        return default
    except (OSError, ValueError):
        LOGGER.warning("Ignoring unreadable file %s", path, exc_info=True)
        return default


def write_json_atomic(path: Path, data: Any, pretty: bool = True, mode: int = 0o666) -> None:
    """Write *data* as JSON to a temp file and rename it over *path*."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2 if pretty else None)
        # Shared files default to 0666 so both processes can rewrite them.
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class SharedFileStorage:
    """Shared files under a data dir (JSON) and a run dir (pid, heartbeat)."""

    def __init__(self, data_dir: Path, run_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.run_dir = Path(run_dir)
        self.rules_path = self.data_dir / RULES_FILE
        self.mode_path = self.data_dir / MODE_FILE
        self.matched_path = self.data_dir / MATCHED_FILE
        self.processed_path = self.data_dir / PROCESSED_FILE
        self.pid_path = self.run_dir / PID_FILE
        self.heartbeat_path = self.run_dir / HEARTBEAT_FILE

    def init_dirs(self) -> None:
        for directory in (self.data_dir, self.run_dir):
            directory.mkdir(parents=True, exist_ok=True)

    # -- rules -----------------------------------------------------------

    def save_rules(self, rules: List[FilterRule]) -> None:
        write_json_atomic(self.rules_path, rules_to_list(rules))

    def load_rules(self) -> List[FilterRule]:
        raw = read_json(self.rules_path, default=_MISSING)
        if raw is _MISSING:
            return []
        try:
            return build_rules(raw)
        except ValueError:
            LOGGER.warning("Rules file %s is malformed, using no rules", self.rules_path)
            return []

    def save_mode(self, mode: GlobalFilterMode) -> None:
        write_json_atomic(self.mode_path, {"globalMode": mode.value})

    def load_mode(self) -> GlobalFilterMode:
        raw = read_json(self.mode_path, default={})
        try:
            return mode_from_value(raw.get("globalMode", GlobalFilterMode.WHITELIST.value))
        except (AttributeError, ValueError):
            LOGGER.warning("Mode file %s is malformed, using whitelist", self.mode_path)
            return GlobalFilterMode.WHITELIST

    # -- match queue -----------------------------------------------------

    def read_matches(self) -> List[MatchedNotification]:
        raw = read_json(self.matched_path, default=[])
        try:
            return decode_matches(raw)
        except ValueError:
            LOGGER.warning("Match queue %s is malformed, treating as empty", self.matched_path)
            return []

    def append_matches(self, matches: List[MatchedNotification]) -> None:
        """Append to whatever is queued; a corrupt queue is replaced."""

        existing = read_json(self.matched_path, default=[])
        if not isinstance(existing, list):
            LOGGER.warning("Match queue %s is malformed, starting a new one", self.matched_path)
            existing = []
        existing.extend(match_to_dict(match) for match in matches)
        write_json_atomic(self.matched_path, existing)

    def clear_matches(self) -> None:
        write_json_atomic(self.matched_path, [], pretty=False)

    # -- liveness --------------------------------------------------------

    def touch_heartbeat(self) -> None:
        self.heartbeat_path.parent.mkdir(parents=True, exist_ok=True)
        self.heartbeat_path.touch()
        os.utime(self.heartbeat_path, None)

    def heartbeat_age(self, now: float) -> Optional[float]:
        try:
            mtime = self.heartbeat_path.stat().st_mtime
        except OSError:
            return None
        return max(0.0, now - mtime)

    def read_pid(self) -> Optional[int]:
        try:
            text = self.pid_path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        try:
            pid = int(text)
        except ValueError:
            LOGGER.warning("Ignoring malformed pid file %s", self.pid_path)
            return None
        return pid if pid > 0 else None

    def write_pid(self, pid: int) -> None:
        self.pid_path.parent.mkdir(parents=True, exist_ok=True)
        self.pid_path.write_text(f"{pid}\n", encoding="utf-8")

    def clear_pid(self) -> None:
        try:
            self.pid_path.unlink()
        except FileNotFoundError:
            pass

    # -- helper progress -------------------------------------------------

    def load_offset(self) -> int:
        raw = read_json(self.processed_path, default={})
        offset = raw.get("lastOffset", 0) if isinstance(raw, dict) else 0
        return offset if isinstance(offset, int) and offset >= 0 else 0

    def save_offset(self, offset: int) -> None:
        write_json_atomic(self.processed_path, {"lastOffset": offset})
