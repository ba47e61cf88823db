"""Deduplication helpers (core domain)."""

from __future__ import annotations

import hashlib
import time
from typing import Callable, Optional

DEFAULT_WINDOW_SECONDS = 300.0

# Unit separator keeps ("ab", "c") and ("a", "bc") from hashing alike.
_SEPARATOR = "\x1f"


def compute_fingerprint(
    bundle_id: str,
    title: str,
    body: str,
    subtitle: Optional[str] = None,
) -> str:
    """Return a SHA-256 content digest for an alert.

    Two notifications with equal digests are treated as the same content;
    no further collision check is made.
    """

    parts = [bundle_id, title, body]
    if subtitle:
        parts.append(subtitle)
    payload = _SEPARATOR.join(parts)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DedupCache:
    """Time-windowed memory of recently alerted fingerprints.

    Best-effort and process-local: a restart forgets everything, so a
    duplicate across a helper or app restart is tolerated.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._last_sent: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._last_sent)

    def should_suppress(self, fingerprint: str) -> bool:
        last_sent = self._last_sent.get(fingerprint)
        if last_sent is None:
            return False
        return (self._clock() - last_sent) < self._window

    def record(self, fingerprint: str) -> None:
        self._last_sent[fingerprint] = self._clock()

    def evict(self) -> int:
        """Drop entries older than twice the window and return how many went."""

        now = self._clock()
        horizon = self._window * 2
        stale = [key for key, sent in self._last_sent.items() if now - sent > horizon]
        for key in stale:
            del self._last_sent[key]
        return len(stale)
