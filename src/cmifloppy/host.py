"""Host launch strategy for the CMI Windows executables.

On Windows the executables run directly. Elsewhere they run under a
compatibility layer (Wine), which also changes how host paths must be spelled
when they are embedded in cmios9 commands.
"""
from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from loguru import logger

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class HostLauncher:
    name: str
    prefix: Tuple[str, ...] = ()
    # Drive letter the compatibility layer maps to the host root; None when
    # host paths are understood as-is.
    guest_drive: Optional[str] = None

    def command(self, exe: PathLike, args: Sequence[str]) -> List[str]:
        """Return the full argv that runs `exe` with `args` on this host."""
        return [*self.prefix, str(exe), *[str(a) for a in args]]

    def to_guest_path(self, path: PathLike) -> str:
        """Spell a host path the way the guest program expects it."""
        full = str(Path(path).expanduser().absolute())
        if self.guest_drive is None:
            return full
        return self.guest_drive + full.replace("/", "\\")

    @property
    def needs_compat_layer(self) -> bool:
        return bool(self.prefix)


def direct_launcher() -> HostLauncher:
    return HostLauncher(name="direct")


def wine_launcher(wine_cmd: str = "wine", guest_drive: str = "Z:") -> HostLauncher:
    return HostLauncher(name="wine", prefix=(wine_cmd,), guest_drive=guest_drive)


def select_launcher(
    mode: str = "auto",
    *,
    wine_cmd: str = "wine",
    guest_drive: str = "Z:",
    platform: Optional[str] = None,
) -> HostLauncher:
    """Pick the launch strategy.

    mode: "direct", "wine", or "auto" (direct on Windows, wine elsewhere).
    platform: override for sys.platform (tests).
    """
    plat = platform or sys.platform
    if mode == "auto":
        mode = "direct" if plat == "win32" else "wine"
    if mode == "direct":
        launcher = direct_launcher()
    elif mode == "wine":
        launcher = wine_launcher(wine_cmd, guest_drive)
    else:
        raise ValueError(f"unknown launcher mode: {mode!r}")
    logger.debug(f"launcher: {launcher.name} (platform={plat})")
    return launcher


def launcher_from_settings(settings: Any) -> HostLauncher:
    return select_launcher(
        settings.launcher,
        wine_cmd=settings.wine_cmd,
        guest_drive=settings.guest_drive,
    )


def no_window_kwargs() -> Dict[str, Any]:
    """Popen kwargs that keep Windows from opening a console window."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}
