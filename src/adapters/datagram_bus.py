"""Named-event bus over Unix datagram sockets.

Every subscribing bus binds one socket file inside a shared directory.
Publishing sends the bare event name to every socket in that directory, so
events reach every process, including the sender. Delivery is at most once:
a full receive buffer or a vanished listener drops the event silently.

Handlers run on the subscriber's asyncio loop via `loop.add_reader`, which
keeps them on the same single-threaded timeline as the rest of the process.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import socket
import uuid
from pathlib import Path
from typing import Dict, Optional

from core.ports import EventHandler

LOGGER = logging.getLogger(__name__)

SOCKET_SUFFIX = ".sock"
MAX_EVENT_BYTES = 256


class DatagramBus:
    """Satisfies BusPort. One handler per event name; a new subscribe replaces it."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)
        self._handlers: Dict[str, EventHandler] = {}
        self._listener: Optional[socket.socket] = None
        self._listener_path: Optional[Path] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def listener_path(self) -> Optional[Path]:
        return self._listener_path

    # -- publishing ------------------------------------------------------

    def publish(self, name: str) -> None:
        data = name.encode("utf-8")
        if len(data) > MAX_EVENT_BYTES:
            raise ValueError(f"Event name too long: {name!r}")
        try:
            targets = sorted(self._directory.glob(f"*{SOCKET_SUFFIX}"))
        except OSError:
            LOGGER.debug("Bus directory %s is not readable", self._directory)
            return

        with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sender:
            sender.setblocking(False)
            for target in targets:
                try:
                    sender.sendto(data, str(target))
                except ConnectionRefusedError:
                    # Nobody bound to it any more: a crashed subscriber.
                    self._remove_stale(target)
                except FileNotFoundError:
                    continue
                except (BlockingIOError, PermissionError):
                    LOGGER.debug("Dropped %s event for %s", name, target.name)
                except OSError:
                    LOGGER.warning("Failed to publish %s to %s", name, target, exc_info=True)

    @staticmethod
    def _remove_stale(target: Path) -> None:
        try:
            target.unlink()
            LOGGER.debug("Removed stale bus socket %s", target.name)
        except OSError:
            pass

    # -- subscribing -----------------------------------------------------

    def subscribe(self, name: str, handler: EventHandler) -> None:
        """Register *handler* for *name*. Must be called on the running loop."""

        self._handlers[name] = handler
        self._ensure_listening()

    def unsubscribe(self, name: str) -> None:
        """Drop the handler for *name*; unknown names are ignored."""

        self._handlers.pop(name, None)
        if not self._handlers:
            self.close()

    def _ensure_listening(self) -> None:
        if self._listener is not None:
            return
        loop = asyncio.get_running_loop()
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._directory / f"{os.getpid()}-{uuid.uuid4().hex[:8]}{SOCKET_SUFFIX}"
        listener = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
        try:
            listener.setblocking(False)
            listener.bind(str(path))
            # The helper runs with different credentials and must reach us.
            os.chmod(path, 0o666)
        except OSError:
            listener.close()
            raise
        loop.add_reader(listener.fileno(), self._on_readable)
        self._listener = listener
        self._listener_path = path
        self._loop = loop
        LOGGER.debug("Bus listening on %s", path)

    def _on_readable(self) -> None:
        listener = self._listener
        if listener is None:
            return
        while True:
            try:
                data = listener.recv(MAX_EVENT_BYTES)
            except BlockingIOError:
                return
            except OSError:
                LOGGER.warning("Bus receive failed", exc_info=True)
                return
            self._dispatch(data.decode("utf-8", errors="replace"))

    def _dispatch(self, name: str) -> None:
        handler = self._handlers.get(name)
        if handler is None:
            return
        try:
            result = handler()
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                task.add_done_callback(_log_task_failure)
        except Exception:
            LOGGER.exception("Handler for %s failed", name)

    def close(self) -> None:
        """Stop listening and remove our socket file. Safe to call twice."""

        listener, path = self._listener, self._listener_path
        self._listener = None
        self._listener_path = None
        if listener is None:
            return
        if self._loop is not None and not self._loop.is_closed():
            self._loop.remove_reader(listener.fileno())
        self._loop = None
        listener.close()
        if path is not None:
            try:
                path.unlink()
            except OSError:
                pass


def _log_task_failure(task: "asyncio.Future") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.error("Bus handler task failed", exc_info=exc)
