"""Shared alert formatting helpers.

Keeping formatting here prevents drift between notifier adapters and keeps
alerts consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from datetime import datetime, timezone

from core.models import AlertPayload


def _timestamp_label(payload: AlertPayload) -> str:
    raw = payload.metadata.get("timestamp")
    if not isinstance(raw, (int, float)):
        return ""
    moment = datetime.fromtimestamp(raw, tz=timezone.utc).astimezone()
    return moment.strftime("%H:%M:%S %d-%m-%Y")


def format_plain(payload: AlertPayload) -> str:
    """Body text for desktop alerts: subtitle line, body, rule line."""

    lines = []
    if payload.subtitle:
        lines.append(payload.subtitle)
    lines.append(payload.body)
    rule_name = payload.metadata.get("matchedRuleName")
    if rule_name:
        lines.append(f"Rule: {rule_name}")
    return "\n".join(lines)


def format_html(payload: AlertPayload) -> str:
    """Create the HTML message body used by the Bot API notifier."""

    def esc(value: object) -> str:
        return html.escape(str(value), quote=False)

    lines = []
    timestamp = _timestamp_label(payload)
    if timestamp:
        lines.append(f"[{esc(timestamp)}]")
    lines.append(f"<b>{esc(payload.title)}</b>")
    if payload.subtitle:
        lines.append(f"<i>{esc(payload.subtitle)}</i>")
    lines.append(esc(payload.body))
    rule_name = payload.metadata.get("matchedRuleName")
    if rule_name:
        lines.append(f"\n<b>Rule:</b> {esc(rule_name)}")
    lines.append(f"<b>App:</b> <code>{esc(payload.thread_id)}</code>")
    return "\n".join(lines)
