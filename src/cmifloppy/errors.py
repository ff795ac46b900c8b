"""Exception taxonomy shared by the session, scraper and conversion layers."""
from __future__ import annotations

from typing import List, Optional


class CmiFloppyError(Exception):
    """Base class for every error raised by cmifloppy."""


class SessionError(CmiFloppyError):
    pass


class AlreadyRunningError(SessionError):
    """start() was called while the CMI OS process is still alive."""


class NotRunningError(SessionError):
    """A command was sent while no CMI OS process is alive."""


class ParseFailure(CmiFloppyError):
    """The directory grammar could not be evaluated.

    Callers of `scrape_directory` never see this; it is logged and the
    listing is treated as empty.
    """


class ExternalToolFailure(CmiFloppyError):
    """A converter invocation failed to spawn, timed out or exited non-zero."""

    def __init__(
        self,
        tool: str,
        cmd: List[str],
        returncode: Optional[int] = None,
        stderr: str = "",
        reason: Optional[str] = None,
    ) -> None:
        self.tool = tool
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        self.reason = reason
        detail = reason or f"exit code {returncode}"
        super().__init__(f"{tool} failed: {detail}")


class InvalidWavError(CmiFloppyError):
    """The WAV file is not 8-bit mono PCM."""


class InvalidSampleError(CmiFloppyError):
    """The selected directory entry is not a voice-card (.VC) sample."""


class TemplateMissingError(CmiFloppyError):
    """The blank disk-image template could not be found."""
