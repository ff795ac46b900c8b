"""Session control for the CMI OS (cmios9) console process.

A session binds one disk image to one running cmios9 process. cmios9 has no
structured protocol: commands are written to its stdin as text lines and its
stdout/stderr are drained by two background threads into an `OutputBuffer`.
Synchronisation with the child is time based and lives in the caller (see
`cmifloppy.client`).
"""
from __future__ import annotations

import subprocess
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, IO, List, Optional

from loguru import logger

from .errors import AlreadyRunningError, NotRunningError
from .host import HostLauncher, launcher_from_settings, no_window_kwargs, select_launcher
from .output_buffer import OutputBuffer

# How long stop() waits for a reader thread to see EOF before giving up on it.
_READER_JOIN_S = 2.0


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class CmiSession:
    def __init__(
        self,
        image_path: Path,
        *,
        cmios_exe: Path,
        launcher: Optional[HostLauncher] = None,
        warmup_s: float = 1.0,
        work_dir: Optional[Path] = None,
        buffer: Optional[OutputBuffer] = None,
    ) -> None:
        if not str(image_path):
            raise ValueError("Disk image path cannot be empty.")
        # Absolute so a separate working directory does not change what they name.
        self.image_path = Path(image_path).expanduser().absolute()
        self.cmios_exe = Path(cmios_exe).expanduser().absolute()
        self.launcher = launcher or select_launcher()
        self.warmup_s = warmup_s
        self.work_dir = Path(work_dir) if work_dir is not None else None
        self.buffer = buffer or OutputBuffer()
        self._proc: Optional[subprocess.Popen] = None
        self._stdin: Optional[IO[str]] = None
        self._readers: List[threading.Thread] = []
        self._started = False

    @classmethod
    def from_settings(
        cls,
        image_path: Path,
        settings: Any,
        launcher: Optional[HostLauncher] = None,
    ) -> "CmiSession":
        return cls(
            image_path,
            cmios_exe=settings.cmios_path,
            launcher=launcher or launcher_from_settings(settings),
            warmup_s=settings.warmup_s,
            work_dir=Path(settings.work_dir).expanduser() if settings.work_dir else None,
        )

    # -- state -----------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    @property
    def state(self) -> SessionState:
        if not self._started:
            return SessionState.NOT_STARTED
        return SessionState.RUNNING if self.is_running else SessionState.STOPPED

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    # -- lifecycle -------------------------------------------------------

    def build_command(self) -> List[str]:
        return self.launcher.command(self.cmios_exe, ["-q1", str(self.image_path)])

    def start(self) -> None:
        """Launch cmios9 on the image and wait for its startup banner.

        Raises AlreadyRunningError if the process is alive. OSError from the
        spawn itself propagates; a failure to start the output readers kills
        the child and is only logged.
        """
        if self.is_running:
            raise AlreadyRunningError("The process is already running.")
        # Release pipes of a process that exited on its own.
        self._release()

        cmd = self.build_command()
        logger.info(f"Starting cmios9 on {self.image_path}")
        logger.debug(f"Running: {cmd}")
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                cwd=str(self.work_dir) if self.work_dir else None,
                **no_window_kwargs(),
            )
        except OSError as e:
            logger.error(f"Error starting cmios9 ({cmd[0]}): {e}")
            raise
        self._proc = proc
        self._stdin = proc.stdin
        self._started = True

        try:
            self._readers = [
                self._start_reader(proc.stdout, self.buffer.append, "stdout"),
                self._start_reader(proc.stderr, self.buffer.append_error, "stderr"),
            ]
        except RuntimeError:
            logger.exception("Error starting cmios9 output readers; killing process")
            self._kill()
            self._release()
            return

        time.sleep(self.warmup_s)
        banner = self.read_output()
        if banner:
            logger.debug(f"cmios9 banner:\n{banner.rstrip()}")
        logger.info(f"cmios9 running (pid={proc.pid})")

    def _start_reader(
        self,
        stream: Optional[IO[str]],
        sink: Callable[[str], None],
        label: str,
    ) -> threading.Thread:
        t = threading.Thread(
            target=_drain,
            args=(stream, sink, label),
            name=f"cmios9-{label}",
            daemon=True,
        )
        t.start()
        return t

    def send_command(self, text: str) -> None:
        """Write one command line to cmios9. Does not wait for a response."""
        if not self.is_running or self._stdin is None:
            raise NotRunningError("The process is not running.")
        logger.debug(f"cmios9 <- {text}")
        try:
            self._stdin.write(text + "\n")
            self._stdin.flush()
        except (OSError, ValueError) as e:
            raise NotRunningError(f"The process is not accepting input: {e}") from e

    def read_output(self) -> str:
        return self.buffer.read_and_clear()

    def stop(self) -> None:
        """Kill cmios9 if it is alive and release the pipes. Idempotent."""
        if self._proc is None:
            return
        if self._proc.poll() is None:
            logger.info(f"Stopping cmios9 (pid={self._proc.pid})")
            self._kill()
        self._release()

    def _kill(self) -> None:
        proc = self._proc
        if proc is None:
            return
        try:
            proc.kill()
        except OSError as e:
            logger.debug(f"kill failed (process already gone?): {e}")
        proc.wait()

    def _release(self) -> None:
        proc = self._proc
        if proc is None:
            return
        if proc.stdin is not None:
            try:
                proc.stdin.close()
            except OSError as e:
                logger.debug(f"closing cmios9 stdin: {e}")
        stuck = False
        for t in self._readers:
            t.join(_READER_JOIN_S)
            stuck = stuck or t.is_alive()
        if stuck:
            # A grandchild (e.g. wineserver) may still hold the pipe; closing it
            # under a blocked reader would block as well.
            logger.warning("cmios9 output readers did not finish; leaving pipes to the daemon threads")
        else:
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
        self._readers = []
        self._stdin = None
        self._proc = None

    def __enter__(self) -> "CmiSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def _drain(stream: Optional[IO[str]], sink: Callable[[str], None], label: str) -> None:
    if stream is None:
        return
    try:
        for line in stream:
            sink(line.rstrip("\r\n"))
    except (OSError, ValueError) as e:
        logger.debug(f"cmios9 {label} reader stopped: {e}")
