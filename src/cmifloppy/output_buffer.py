"""Thread-safe aggregation of the CMI OS process output.

Two reader threads (stdout and stderr) append complete lines; the foreground
flow reads everything accumulated so far and clears it in one step.
"""
from __future__ import annotations

import os
import threading
import time
from typing import List, Optional


ERROR_PREFIX = "ERROR: "


class OutputBuffer:
    def __init__(self, newline: Optional[str] = None) -> None:
        self._newline = newline if newline is not None else os.linesep
        self._lines: List[str] = []
        self._cond = threading.Condition()
        self._last_append = time.monotonic()

    @property
    def newline(self) -> str:
        return self._newline

    def append(self, line: str) -> None:
        with self._cond:
            self._lines.append(line)
            self._last_append = time.monotonic()
            self._cond.notify_all()

    def append_error(self, line: str) -> None:
        self.append(ERROR_PREFIX + line)

    def read_and_clear(self) -> str:
        """Return every buffered line (each newline-terminated) and empty the buffer."""
        with self._cond:
            lines, self._lines = self._lines, []
        return "".join(line + self._newline for line in lines)

    def wait_quiet(self, quiet_s: float, timeout_s: float) -> bool:
        """Block until nothing was appended for `quiet_s` seconds.

        The silence window starts no earlier than the call itself, so a child
        that has not answered yet still gets `quiet_s` to begin. Returns False
        if output was still arriving when `timeout_s` ran out.
        """
        start = time.monotonic()
        deadline = start + timeout_s
        with self._cond:
            while True:
                now = time.monotonic()
                quiet_until = max(self._last_append, start) + quiet_s
                if now >= quiet_until:
                    return True
                if now >= deadline:
                    return False
                self._cond.wait(min(quiet_until, deadline) - now)

    def __len__(self) -> int:
        with self._cond:
            return len(self._lines)
