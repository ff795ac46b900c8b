from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from tomlkit import dumps as toml_dumps


DEFAULT_CONFIG_PATH = Path("~/.config/cmifloppy/config.toml").expanduser()
ENV_PREFIX = "CMIFLOPPY_"


class CmiSettings(BaseSettings):
    """Global settings for cmifloppy.

    Priority (lowest -> highest):
    - Class defaults below
    - TOML file at `config_path` (default: ~/.config/cmifloppy/config.toml)
    - Environment variables with prefix CMIFLOPPY_
    - CLI overrides passed to `load(overrides=...)`
    """

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="Path for structured JSON log file")

    # External binaries
    tools_dir: str = Field(default="./Files", description="Directory holding the CMI executables and blank image")
    cmios_exe: str = Field(default="cmios9.exe", description="CMI OS executable (relative to tools_dir unless absolute)")
    bin2imd_exe: str = Field(default="bin2imd.exe", description="Raw image -> IMD converter")
    floptool_exe: str = Field(default="floptool.exe", description="IMD -> MFI/MFM converter")
    empty_image: str = Field(default="empty.img", description="Blank disk-image template")

    # Host launch strategy
    launcher: Literal["auto", "direct", "wine"] = Field(
        default="auto",
        description="How to run the Windows executables: auto (wine unless on Windows), direct, wine",
    )
    wine_cmd: str = Field(default="wine", description="Compatibility layer command")
    guest_drive: str = Field(default="Z:", description="Drive prefix the compatibility layer maps to /")

    # Session timing
    warmup_s: float = Field(default=1.0, description="Wait after starting cmios9 for its banner")
    settle_s: float = Field(default=0.5, description="Wait after each command before reading output")
    settle_mode: Literal["fixed", "quiet"] = Field(
        default="fixed",
        description="fixed: sleep settle_s; quiet: wait until output has been silent for quiet_s",
    )
    quiet_s: float = Field(default=0.2, description="Silence window for settle_mode=quiet")
    settle_timeout_s: float = Field(default=5.0, description="Upper bound on a quiet-mode settle")

    # Conversion
    tool_timeout_s: float = Field(default=300.0, description="Timeout for one converter invocation")
    temp_dir: Optional[str] = Field(default=None, description="Directory for intermediate .imd files; None=system temp")
    work_dir: Optional[str] = Field(default=None, description="cmios9 working directory; None=current directory")

    # Config source/path (not persisted as part of effective config when writing)
    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @staticmethod
    def default_config_path() -> Path:
        return DEFAULT_CONFIG_PATH

    def tool_path(self, name: str) -> Path:
        """Resolve an executable or template name against `tools_dir`."""
        p = Path(name).expanduser()
        if p.is_absolute():
            return p
        return Path(self.tools_dir).expanduser() / p

    @property
    def cmios_path(self) -> Path:
        return self.tool_path(self.cmios_exe)

    @property
    def bin2imd_path(self) -> Path:
        return self.tool_path(self.bin2imd_exe)

    @property
    def floptool_path(self) -> Path:
        return self.tool_path(self.floptool_exe)

    @property
    def empty_image_path(self) -> Path:
        return self.tool_path(self.empty_image)

    @classmethod
    def _toml_file_source(cls, config_path: Path) -> Dict[str, Any]:
        """Read settings from a TOML file if it exists; return dict values.

        Unknown keys are ignored by pydantic via extra="ignore".
        """
        if not config_path or not config_path.exists():
            return {}
        with config_path.open("rb") as f:
            data = tomllib.load(f)
        if not isinstance(data, dict):
            return {}
        return data  # type: ignore[return-value]

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "CmiSettings":
        """Load settings from defaults + TOML + env + CLI overrides.

        - config_path: path to TOML config; defaults to ~/.config/cmifloppy/config.toml
        - overrides: dict of CLI values (None values are ignored)
        """
        cp = config_path or DEFAULT_CONFIG_PATH
        file_values = cls._toml_file_source(cp)
        # Init kwargs outrank env in pydantic-settings; leave env-set keys to the env source.
        env_names = {k.upper() for k in os.environ}
        file_values = {k: v for k, v in file_values.items() if f"{ENV_PREFIX}{k}".upper() not in env_names}
        # Build settings in two steps so that env can override file, and CLI overrides override env
        base = cls(**file_values)
        if overrides:
            non_none = {k: v for k, v in overrides.items() if v is not None}
        else:
            non_none = {}
        merged = base.model_dump()
        merged.update(non_none)
        settings = cls(**merged)
        settings.config_path = cp
        return settings

    def to_toml(self) -> str:
        """Serialize effective settings (excluding ephemeral fields) to TOML string."""
        data = self.model_dump(exclude={"config_path"}, exclude_none=True)
        return toml_dumps(data)

    def write(self, path: Optional[Path] = None) -> Path:
        """Write effective config to TOML at `path` (or default path). Creates parent dirs.

        Returns the path written.
        """
        target = path or self.config_path or DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        content = self.to_toml()
        target.write_text(content, encoding="utf-8")
        return target


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Extract known settings keys from argparse Namespace into an overrides dict.

    Unknown keys are ignored; None values are preserved for filtering by `load()`.
    """
    keys = {
        "log_level",
        "log_json",
        "tools_dir",
        "launcher",
        "warmup_s",
        "settle_s",
        "settle_mode",
        "temp_dir",
        "work_dir",
    }
    result: Dict[str, Any] = {}
    for k in keys:
        if hasattr(args, k):
            result[k] = getattr(args, k)
    return result
