"""Preflight checks for the external CMI executables and Wine.

Uses only the Python standard library.
"""
from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class WineStatus:
    available: bool
    wine_path: Optional[str] = None
    wine_version: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ToolsStatus:
    # name -> resolved path, for each executable/template
    paths: Dict[str, Path] = field(default_factory=dict)
    missing: Dict[str, Path] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.missing


def _run(cmd: list[str]) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
            text=True,
            timeout=30,
        )
        return proc.returncode, proc.stdout, proc.stderr
    except (OSError, subprocess.TimeoutExpired) as exc:
        return 1, "", str(exc)


def probe_wine(wine_cmd: str = "wine") -> WineStatus:
    """Check that the compatibility layer runs and identifies itself as wine."""
    path = shutil.which(wine_cmd)
    if not path:
        return WineStatus(available=False, error=f"{wine_cmd} not found in PATH")
    rc, out, err = _run([path, "--version"])
    version = out.strip().splitlines()[0] if out.strip() else None
    if rc != 0 or not version or not version.startswith("wine"):
        return WineStatus(
            available=False,
            wine_path=path,
            wine_version=version,
            error=(err.strip() or f"{wine_cmd} --version did not report a wine version"),
        )
    return WineStatus(available=True, wine_path=path, wine_version=version)


def probe_tools(settings: Any) -> ToolsStatus:
    """Report which configured executables and the blank template exist."""
    wanted = {
        "cmios9": settings.cmios_path,
        "bin2imd": settings.bin2imd_path,
        "floptool": settings.floptool_path,
        "empty image": settings.empty_image_path,
    }
    status = ToolsStatus()
    for name, path in wanted.items():
        if Path(path).is_file():
            status.paths[name] = Path(path)
        else:
            status.missing[name] = Path(path)
    return status


if __name__ == "__main__":
    print(probe_wine())
