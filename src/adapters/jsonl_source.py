"""JSON-lines notification source.

Reference NotificationSourcePort for the helper: whatever captures raw
notifications appends one JSON object per line to a spool file. The source
offset of a record is the byte offset just past its line, so offsets grow
monotonically and the helper can resume where it stopped.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from core.models import NotificationRecord
from core.serialization import parse_timestamp

LOGGER = logging.getLogger(__name__)


def _optional_text(raw: dict, key: str) -> Optional[str]:
    value = raw.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {type(value).__name__}")
    return value


def record_from_line(raw: dict, offset: int) -> NotificationRecord:
    if not isinstance(raw, dict):
        raise ValueError("Record must be a JSON object")
    timestamp = raw.get("timestamp")
    return NotificationRecord(
        bundle_id=str(raw["bundleId"]),
        title=str(raw.get("title", "")),
        subtitle=_optional_text(raw, "subtitle"),
        body=str(raw.get("body", "")),
        apple_id=_optional_text(raw, "appleId"),
        timestamp=parse_timestamp(timestamp) if timestamp else datetime.now(timezone.utc),
        source_offset=offset,
    )


class JsonlNotificationSource:
    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def read_since(self, offset: int) -> List[NotificationRecord]:
        try:
            handle = open(self._path, "rb")
        except FileNotFoundError:
            return []

        records: List[NotificationRecord] = []
        with handle:
            handle.seek(0, 2)
            if handle.tell() < offset:
                # Spool was truncated or replaced; start over.
                LOGGER.info("Notification spool %s shrank, rereading from start", self._path)
                offset = 0
            handle.seek(offset)
            position = offset
            for line in handle:
                if not line.endswith(b"\n"):
                    # Partial write in progress; leave it for the next scan.
                    break
                position += len(line)
                if not line.strip():
                    continue
                try:
                    records.append(record_from_line(json.loads(line), position))
                except (KeyError, ValueError):
                    LOGGER.warning("Skipping malformed record ending at offset %s", position)
        return records
