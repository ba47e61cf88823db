"""Static directory of well-known apps, keyed by bundle identifier."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional

MESSAGING = "Messaging"
SOCIAL = "Social"
WORK = "Work"
EMAIL = "Email"
OTHER = "Other"


@dataclass(frozen=True)
class KnownApp:
    bundle_id: str
    name: str
    category: str


KNOWN_APPS: tuple[KnownApp, ...] = (
    KnownApp("net.whatsapp.WhatsApp", "WhatsApp", MESSAGING),
    KnownApp("ph.telegra.Telegraph", "Telegram", MESSAGING),
    KnownApp("com.apple.MobileSMS", "iMessage", MESSAGING),
    KnownApp("org.whispersystems.signal", "Signal", MESSAGING),
    KnownApp("com.facebook.Messenger", "Messenger", MESSAGING),
    KnownApp("com.viber", "Viber", MESSAGING),
    KnownApp("com.skype.skype", "Skype", MESSAGING),
    KnownApp("com.tinyspeck.chatlyio", "Slack", WORK),
    KnownApp("com.microsoft.skype.teams", "Microsoft Teams", WORK),
    KnownApp("us.zoom.videomeetings", "Zoom", WORK),
    KnownApp("com.discord", "Discord", WORK),
    KnownApp("com.google.Gmail", "Gmail", EMAIL),
    KnownApp("com.microsoft.Office.Outlook", "Outlook", EMAIL),
    KnownApp("com.apple.mobilemail", "Apple Mail", EMAIL),
    KnownApp("com.burbn.instagram", "Instagram", SOCIAL),
    KnownApp("com.atebits.Tweetie2", "Twitter/X", SOCIAL),
    KnownApp("com.facebook.Facebook", "Facebook", SOCIAL),
    KnownApp("com.zhiliaoapp.musically", "TikTok", SOCIAL),
    KnownApp("com.linkedin.LinkedIn", "LinkedIn", SOCIAL),
)

_BY_BUNDLE_ID = {app.bundle_id: app for app in KNOWN_APPS}


def find_app(bundle_id: str) -> Optional[KnownApp]:
    return _BY_BUNDLE_ID.get(bundle_id)


def grouped() -> Dict[str, List[KnownApp]]:
    groups: Dict[str, List[KnownApp]] = defaultdict(list)
    for app in KNOWN_APPS:
        groups[app.category].append(app)
    return dict(groups)
