"""Telegram Bot API alert adapter.

Routes alerts to a bot chat for when the device running the helper is not
the one the user is looking at. Telegram has no "bypass silence" flag, so
the best it can do is never send silently.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request
from typing import Tuple

from adapters.notification_formatting import format_html
from core.models import AlertPayload


class TelegramBotNotifier:
    """Notifier adapter that sends alerts via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/{method}"

    def _post(self, method: str, payload: dict) -> dict:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(method), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=10) as response:
                return json.loads(response.read().decode("utf-8") or "{}")
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"Bot API error {e.code}: {body}") from e

    async def deliver(self, payload: AlertPayload) -> None:
        message = {
            "chat_id": self._chat_id,
            "text": format_html(payload),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
            "disable_notification": not payload.interrupt_when_silenced,
        }
        # The HTTP call is blocking; keep it off the event loop.
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._post, "sendMessage", message)

    async def check_authorization(self) -> Tuple[bool, bool]:
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, self._post, "getMe", {})
        except (RuntimeError, OSError):
            return False, False
        ok = bool(result.get("ok"))
        return ok, ok
