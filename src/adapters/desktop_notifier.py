"""Desktop alert adapter built on `notify-send`.

Alerts go out with critical urgency, which notification daemons show even
while do-not-disturb is on. The grouping key is passed as a stack tag so
alerts from one app replace/thread together where the daemon supports it.
"""

from __future__ import annotations

import asyncio
import shutil
from typing import Tuple

from adapters.notification_formatting import format_plain
from core.models import AlertPayload

APP_NAME = "notifilter"


class DesktopAlertNotifier:
    """Notifier adapter that raises desktop notifications."""

    def __init__(self, executable: str = "notify-send", timeout: float = 10.0) -> None:
        self._executable = executable
        self._timeout = timeout

    def _argv(self, payload: AlertPayload) -> list[str]:
        urgency = "critical" if payload.interrupt_when_silenced else "normal"
        return [
            self._executable,
            f"--urgency={urgency}",
            f"--app-name={APP_NAME}",
            "--category=im.received",
            f"--hint=string:x-dunst-stack-tag:{payload.thread_id}",
            f"--hint=string:x-notifilter-id:{payload.identifier}",
            payload.title,
            format_plain(payload),
        ]

    async def deliver(self, payload: AlertPayload) -> None:
        process = await asyncio.create_subprocess_exec(
            *self._argv(payload),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), self._timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise RuntimeError(f"{self._executable} timed out")
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"{self._executable} exited with {process.returncode}: {message}")

    async def check_authorization(self) -> Tuple[bool, bool]:
        # notify-send has no permission model; availability is the grant.
        available = shutil.which(self._executable) is not None
        return available, available
