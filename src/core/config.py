"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DedupConfig:
    """Alert deduplication settings."""

    window_seconds: float = 300.0


@dataclass(frozen=True)
class SupervisorConfig:
    """Timing used by the foreground process to keep the helper alive."""

    health_check_interval: float = 30.0
    heartbeat_freshness: float = 60.0
    wake_interval: float = 60.0


@dataclass(frozen=True)
class HelperConfig:
    """Timing used by the helper while monitoring."""

    heartbeat_interval: float = 30.0
    scan_interval: float = 2.0
