"""Serialized command dispatch over a `CmiSession`.

cmios9 gives no acknowledgement, so a command is "done" when its settle period
has passed. The client holds a lock over the whole send -> settle -> read
sequence so that at most one command is in flight and each command's output
can be attributed to it.
"""
from __future__ import annotations

import os
import shutil
import threading
import time
from pathlib import Path
from typing import Any, List, Optional

from loguru import logger

from . import commands
from .commands import Command
from .directory import scrape_directory
from .host import HostLauncher
from .session import CmiSession


class CmiOsClient:
    def __init__(
        self,
        session: CmiSession,
        *,
        settle_s: float = commands.DEFAULT_SETTLE_S,
        settle_mode: str = "fixed",
        quiet_s: float = 0.2,
        settle_timeout_s: float = 5.0,
        work_dir: Optional[Path] = None,
    ) -> None:
        if settle_mode not in ("fixed", "quiet"):
            raise ValueError(f"unknown settle mode: {settle_mode!r}")
        self.session = session
        self.settle_s = settle_s
        self.settle_mode = settle_mode
        self.quiet_s = quiet_s
        self.settle_timeout_s = settle_timeout_s
        # Where `export` drops its file: the cmios9 working directory.
        self.work_dir = Path(work_dir) if work_dir is not None else (session.work_dir or Path(os.getcwd()))
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, session: CmiSession, settings: Any) -> "CmiOsClient":
        return cls(
            session,
            settle_s=settings.settle_s,
            settle_mode=settings.settle_mode,
            quiet_s=settings.quiet_s,
            settle_timeout_s=settings.settle_timeout_s,
        )

    @property
    def launcher(self) -> HostLauncher:
        return self.session.launcher

    def _settle(self, command: Command) -> None:
        if self.settle_mode == "quiet":
            if not self.session.buffer.wait_quiet(self.quiet_s, max(self.settle_timeout_s, self.quiet_s)):
                logger.warning(f"cmios9 still printing after {self.settle_timeout_s}s: {command.text}")
        else:
            time.sleep(command.settle_s)

    def execute(self, command: Command) -> str:
        """Send one command, wait for it to settle and return its output."""
        with self._lock:
            # Anything left over belongs to an earlier command or to the banner.
            stale = self.session.read_output()
            if stale:
                logger.debug(f"discarding unread cmios9 output:\n{stale.rstrip()}")
            self.session.send_command(command.text)
            self._settle(command)
            output = self.session.read_output()
        if output:
            logger.debug(f"cmios9 -> {command.text}:\n{output.rstrip()}")
        return output

    # -- intents ---------------------------------------------------------

    def list_directory(self) -> List[str]:
        output = self.execute(commands.dir_command(self.settle_s))
        entries = scrape_directory(output, newline=self.session.buffer.newline)
        logger.info(f"Directory: {len(entries)} entries")
        return entries

    def import_sample(self, wav_path: Path, sample_name: str) -> str:
        guest = self.launcher.to_guest_path(wav_path)
        logger.info(f"Importing {wav_path} as {sample_name}{commands.SAMPLE_EXT}")
        return self.execute(commands.import_command(guest, sample_name, self.settle_s))

    def export_sample(self, sample_name: str, dest: Path) -> str:
        guest = self.launcher.to_guest_path(dest)
        logger.info(f"Exporting {sample_name} to {dest} (WAV)")
        return self.execute(commands.export_wav_command(sample_name, guest, self.settle_s))

    def export_sample_as_vc(self, sample_name: str, dest: Path) -> Optional[Path]:
        """Export in the native voice-card format and move the file to `dest`.

        Returns the destination, or None if cmios9 produced no file.
        """
        logger.info(f"Exporting {sample_name} to {dest} (VC)")
        self.execute(commands.export_vc_command(sample_name, self.settle_s))
        produced = self.work_dir / commands.exported_file_name(sample_name)
        if not produced.exists():
            logger.warning(f"cmios9 did not write {produced}")
            return None
        dest = Path(dest)
        if dest.exists():
            dest.unlink()
        shutil.move(str(produced), str(dest))
        return dest

    def delete_sample(self, sample_name: str) -> str:
        logger.info(f"Deleting {sample_name}")
        return self.execute(commands.delete_command(sample_name, self.settle_s))

    def rename_sample(self, sample_name: str, new_name: str) -> str:
        logger.info(f"Renaming {sample_name} to {new_name}{commands.SAMPLE_EXT}")
        return self.execute(commands.rename_command(sample_name, new_name, self.settle_s))
