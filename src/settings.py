"""Static configuration for notifilter.

All user-editable settings (paths, timings, dedup, notifications, logging)
live in a single JSON file for quick edits without touching Python. The
file location can be overridden with NOTIFILTER_CONFIG (also read from
.env). A missing file means every default applies.
"""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.getenv("NOTIFILTER_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve(path: str) -> Path:
    expanded = Path(os.path.expanduser(path))
    if not expanded.is_absolute():
        expanded = Path(PROJECT_ROOT) / expanded
    return expanded


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Shared state locations. data_dir holds the JSON files both processes
# exchange; run_dir holds the pid and heartbeat files; bus_dir holds one
# socket per listening process.
_paths = _CONFIG.get("paths", {})
DATA_DIR = _resolve(_paths.get("data_dir", "var/lib/notifilter"))
RUN_DIR = _resolve(_paths.get("run_dir", "var/run/notifilter"))
BUS_DIR = _resolve(_paths.get("bus_dir", "var/run/notifilter/bus"))
# Private foreground rule store; only the app reads it.
STORE_PATH = _resolve(_paths.get("store_path", "var/lib/notifilter/store.json"))
# Spool the helper reads notifications from.
SOURCE_PATH = _resolve(_paths.get("source_path", "var/lib/notifilter/incoming.jsonl"))

# Helper process: how it is elevated and how often it reports.
_helper = _CONFIG.get("helper", {})
HELPER_ELEVATION = list(_helper.get("elevation", ["sudo", "-n"]))
HELPER_COMMAND = list(_helper.get("command", []))
HELPER_HEARTBEAT_INTERVAL = float(_helper.get("heartbeat_interval", 30))
HELPER_SCAN_INTERVAL = float(_helper.get("scan_interval", 2))

# Supervisor timings used by the foreground app.
_supervisor = _CONFIG.get("supervisor", {})
HEALTH_CHECK_INTERVAL = float(_supervisor.get("health_check_interval", 30))
HEARTBEAT_FRESHNESS = float(_supervisor.get("heartbeat_freshness", 60))
WAKE_INTERVAL = float(_supervisor.get("wake_interval", 60))

# Deduplication window for repeated alerts.
_dedup = _CONFIG.get("dedup", {})
DEDUP_WINDOW_SECONDS = float(_dedup.get("window_seconds", 300))

# Notification method switches adapters without changing core logic.
_notifications = _CONFIG.get("notifications", {})
NOTIFICATION_METHOD = _notifications.get("method", "desktop")
# Bot chat id is only required when method=telegram_bot.
BOT_CHAT_ID = _notifications.get("bot_chat_id")
RECENT_LIMIT = int(_notifications.get("recent_limit", 50))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
