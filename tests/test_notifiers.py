from __future__ import annotations

import asyncio

from adapters.desktop_notifier import DesktopAlertNotifier
from adapters.notification_formatting import format_html, format_plain
from adapters.telegram_bot_notifier import TelegramBotNotifier
from core.models import AlertPayload


def _payload(**overrides) -> AlertPayload:
    values = dict(
        identifier="notifilter-1",
        title="Mom <3",
        body="Call me & hurry",
        subtitle="via Messages",
        thread_id="com.apple.MobileSMS",
        interrupt_when_silenced=True,
        metadata={"matchedRuleName": "Family", "timestamp": 1_700_000_000.0},
    )
    values.update(overrides)
    return AlertPayload(**values)


def test_format_plain() -> None:
    assert format_plain(_payload()) == "via Messages\nCall me & hurry\nRule: Family"
    assert format_plain(_payload(subtitle=None, metadata={})) == "Call me & hurry"


def test_format_html_escapes_content() -> None:
    text = format_html(_payload())
    assert "<b>Mom &lt;3</b>" in text
    assert "Call me &amp; hurry" in text
    assert "<i>via Messages</i>" in text
    assert "<code>com.apple.MobileSMS</code>" in text


def test_desktop_argv_is_critical_and_grouped() -> None:
    argv = DesktopAlertNotifier()._argv(_payload())
    assert argv[0] == "notify-send"
    assert "--urgency=critical" in argv
    assert "--hint=string:x-dunst-stack-tag:com.apple.MobileSMS" in argv
    assert argv[-2] == "Mom <3"


def test_desktop_authorization_depends_on_executable() -> None:
    notifier = DesktopAlertNotifier(executable="definitely-not-a-real-notifier")
    assert asyncio.run(notifier.check_authorization()) == (False, False)


def test_bot_notifier_never_sends_silently(monkeypatch) -> None:
    calls = []
    notifier = TelegramBotNotifier("TOKEN", "42")
    monkeypatch.setattr(notifier, "_post", lambda method, payload: calls.append((method, payload)) or {})

    asyncio.run(notifier.deliver(_payload()))
    method, message = calls[0]
    assert method == "sendMessage"
    assert message["chat_id"] == "42"
    assert message["parse_mode"] == "HTML"
    assert message["disable_notification"] is False


def test_bot_authorization_reflects_get_me(monkeypatch) -> None:
    notifier = TelegramBotNotifier("TOKEN", "42")
    monkeypatch.setattr(notifier, "_post", lambda method, payload: {"ok": True})
    assert asyncio.run(notifier.check_authorization()) == (True, True)

    def refuse(method, payload):
        raise RuntimeError("Bot API error 401")

    monkeypatch.setattr(notifier, "_post", refuse)
    assert asyncio.run(notifier.check_authorization()) == (False, False)
