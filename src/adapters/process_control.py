"""OS process control adapters: elevated spawn, liveness probe, termination.

These are the only blocking process calls in the app; the supervisor runs
them in an executor.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from typing import List, Sequence

LOGGER = logging.getLogger(__name__)


class ElevatedSpawner:
    """Starts the helper through an elevation prefix such as `sudo -n`.

    The returned pid is the direct child (the elevation wrapper when one is
    used); the helper overwrites the pid file with its own pid on startup.
    """

    def __init__(self, elevation: Sequence[str], command: Sequence[str]) -> None:
        self._argv: List[str] = [*elevation, *command]
        if not self._argv:
            raise ValueError("Helper command is empty")

    @property
    def argv(self) -> List[str]:
        return list(self._argv)

    def spawn(self) -> int:
        LOGGER.info("Spawning helper: %s", " ".join(self._argv))
        process = subprocess.Popen(
            self._argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        return process.pid


class OsProcessProbe:
    """Signal-0 liveness probe and SIGTERM, escalating through the elevation prefix.

    The helper usually runs as another user, so a plain kill can be refused;
    termination then goes through `<elevation> kill -TERM <pid>`.
    """

    def __init__(self, elevation: Sequence[str] = ()) -> None:
        self._elevation = list(elevation)

    def is_alive(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists, just not ours.
            return True
        return True

    def terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGTERM)
            return
        except ProcessLookupError:
            return
        except PermissionError:
            if not self._elevation:
                raise
        try:
            result = subprocess.run(
                [*self._elevation, "kill", "-TERM", str(pid)],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=10,
                check=False,
            )
        except subprocess.SubprocessError as exc:
            raise OSError(f"Elevated kill of {pid} did not finish: {exc}") from exc
        if result.returncode != 0:
            raise PermissionError(
                f"Elevated kill of {pid} failed: {result.stderr.decode(errors='replace').strip()}"
            )
