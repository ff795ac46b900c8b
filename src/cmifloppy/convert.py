"""Disk-image container conversion with external tools.

- Stage 1 (always): bin2imd turns the raw .img into ImageDisk (.imd) using
  the CMI floppy geometry.
- Stage 2 (MFI/MFM only): floptool converts the .imd into the MAME format.

For two-step conversions the .imd is an intermediate file in the temp
directory, removed when the job ends whether or not stage 2 succeeded. Any
failing stage aborts the job with ExternalToolFailure; there are no retries.
"""
from __future__ import annotations

import os
import shlex
import subprocess
import tempfile
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from loguru import logger

from .errors import ExternalToolFailure
from .host import HostLauncher, launcher_from_settings, no_window_kwargs
from .logging import log_event, truncate

# 2 sides, 128 byte sectors numbered 1-26, 77 tracks (8" single density).
BIN2IMD_GEOMETRY = ["/2", "DM=0", "SS=128", "SM=1-26", "N=77"]


class DiskFormat(str, Enum):
    IMD = "imd"
    MFI = "mfi"
    MFM = "mfm"

    @property
    def two_step(self) -> bool:
        return self is not DiskFormat.IMD

    @classmethod
    def from_path(cls, path: Path) -> "DiskFormat":
        suffix = Path(path).suffix.lower().lstrip(".")
        try:
            return cls(suffix)
        except ValueError:
            raise ValueError(f"cannot infer target format from {path} (expected .imd, .mfi or .mfm)") from None


@dataclass(frozen=True)
class ConversionJob:
    source: Path
    destination: Path
    target_format: DiskFormat
    intermediate: Optional[Path] = None

    @property
    def imd_target(self) -> Path:
        """Where stage 1 writes."""
        return self.intermediate if self.intermediate is not None else self.destination


def build_bin2imd_cmd(launcher: HostLauncher, exe: Path, source: Path, target: Path) -> List[str]:
    return launcher.command(exe, [str(source), str(target), *BIN2IMD_GEOMETRY])


def build_floptool_cmd(
    launcher: HostLauncher,
    exe: Path,
    fmt: DiskFormat,
    source_imd: Path,
    target: Path,
) -> List[str]:
    return launcher.command(exe, ["flopconvert", "imd", fmt.value, str(source_imd), str(target)])


def cmd_to_string(cmd: List[str]) -> str:
    return " ".join(shlex.quote(p) for p in cmd)


def run_tool(tool: str, cmd: List[str], *, timeout: Optional[float] = None) -> str:
    """Run a converter to completion; return its stdout.

    Raises ExternalToolFailure on spawn error, timeout or non-zero exit.
    """
    logger.debug(f"Running {tool}: {cmd_to_string(cmd)}")
    try:
        proc = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            timeout=timeout,
            **no_window_kwargs(),
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"{tool} timed out after {timeout}s")
        raise ExternalToolFailure(tool, cmd, reason=f"timed out after {timeout}s") from e
    except OSError as e:
        logger.error(f"{tool} could not be started: {e}")
        raise ExternalToolFailure(tool, cmd, reason=str(e)) from e
    if proc.returncode != 0:
        err = truncate(proc.stderr or proc.stdout or "")
        logger.error(f"{tool} failed with exit code {proc.returncode}")
        if err:
            logger.error(err)
        raise ExternalToolFailure(tool, cmd, returncode=proc.returncode, stderr=err)
    return proc.stdout or ""


def _temp_imd_path(temp_dir: Optional[Path]) -> Path:
    """Return a unique intermediate .imd path."""
    base = Path(temp_dir) if temp_dir is not None else Path(tempfile.gettempdir())
    return base / f"cmifloppy-{os.getpid()}-{uuid.uuid4().hex[:8]}.imd"


class ConversionPipeline:
    def __init__(
        self,
        *,
        bin2imd_exe: Path,
        floptool_exe: Path,
        launcher: HostLauncher,
        temp_dir: Optional[Path] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.bin2imd_exe = Path(bin2imd_exe)
        self.floptool_exe = Path(floptool_exe)
        self.launcher = launcher
        self.temp_dir = Path(temp_dir) if temp_dir is not None else None
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Any, launcher: Optional[HostLauncher] = None) -> "ConversionPipeline":
        return cls(
            bin2imd_exe=settings.bin2imd_path,
            floptool_exe=settings.floptool_path,
            launcher=launcher or launcher_from_settings(settings),
            temp_dir=Path(settings.temp_dir).expanduser() if settings.temp_dir else None,
            timeout_s=settings.tool_timeout_s,
        )

    def plan(self, source: Path, destination: Path, fmt: Optional[DiskFormat] = None) -> ConversionJob:
        target_format = fmt or DiskFormat.from_path(destination)
        intermediate = _temp_imd_path(self.temp_dir) if target_format.two_step else None
        return ConversionJob(
            source=Path(source),
            destination=Path(destination),
            target_format=target_format,
            intermediate=intermediate,
        )

    def run(self, job: ConversionJob) -> Path:
        """Run every stage of `job`; return the destination path."""
        logger.info(f"Converting {job.source} -> {job.destination} ({job.target_format.value})")
        try:
            run_tool(
                "bin2imd",
                build_bin2imd_cmd(self.launcher, self.bin2imd_exe, job.source, job.imd_target),
                timeout=self.timeout_s,
            )
            if job.target_format.two_step:
                run_tool(
                    "floptool",
                    build_floptool_cmd(
                        self.launcher,
                        self.floptool_exe,
                        job.target_format,
                        job.imd_target,
                        job.destination,
                    ),
                    timeout=self.timeout_s,
                )
        finally:
            if job.intermediate is not None:
                try:
                    job.intermediate.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning(f"Could not remove intermediate {job.intermediate}: {e}")
        log_event(
            "convert",
            msg=f"Wrote: {job.destination}",
            source=str(job.source),
            destination=str(job.destination),
            format=job.target_format.value,
        )
        return job.destination

    def convert(self, source: Path, destination: Path, fmt: Optional[DiskFormat] = None) -> Path:
        return self.run(self.plan(source, destination, fmt))
