"""Disk editing workflow.

`DiskEditor` owns the single active cmios9 session: opening, creating or
converting an image always stops the previous session before a new one is
started. Each editing operation re-lists the directory afterwards so
`directory` reflects the image.
"""
from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger

from .client import CmiOsClient
from .config import CmiSettings
from .convert import ConversionPipeline, DiskFormat
from .disk_image import create_blank_image, is_mono_8bit_wav, set_disk_info
from .errors import InvalidSampleError, InvalidWavError, NotRunningError
from .host import HostLauncher, launcher_from_settings
from .logging import bind_session
from .session import CmiSession

SessionFactory = Callable[[Path], CmiSession]


class DiskEditor:
    def __init__(
        self,
        settings: Optional[CmiSettings] = None,
        *,
        launcher: Optional[HostLauncher] = None,
        session_factory: Optional[SessionFactory] = None,
        pipeline: Optional[ConversionPipeline] = None,
    ) -> None:
        self.settings = settings or CmiSettings()
        self.launcher = launcher or launcher_from_settings(self.settings)
        self._session_factory = session_factory or self._default_session
        self.pipeline = pipeline or ConversionPipeline.from_settings(self.settings, self.launcher)
        self.image_path: Optional[Path] = None
        self.directory: List[str] = []
        self._session: Optional[CmiSession] = None
        self._client: Optional[CmiOsClient] = None

    def _default_session(self, image_path: Path) -> CmiSession:
        return CmiSession.from_settings(image_path, self.settings, self.launcher)

    @property
    def session(self) -> Optional[CmiSession]:
        return self._session

    @property
    def is_open(self) -> bool:
        return self._session is not None and self._session.is_running

    @property
    def client(self) -> CmiOsClient:
        return self._require_client()

    def _require_client(self) -> CmiOsClient:
        if self._client is None:
            raise NotRunningError("No disk image is open.")
        return self._client

    # -- session lifecycle -----------------------------------------------

    def close(self) -> None:
        if self._session is not None:
            self._session.stop()
        self._session = None
        self._client = None

    def _start(self, image_path: Path) -> None:
        self.close()
        bind_session(image_path)
        session = self._session_factory(image_path)
        session.start()
        self._session = session
        self._client = CmiOsClient.from_settings(session, self.settings)
        self.image_path = image_path
        self.refresh()

    def open_image(self, path: Path) -> List[str]:
        """Start cmios9 on `path` and return its directory."""
        self._start(Path(path))
        return self.directory

    def create_image(
        self,
        path: Path,
        disk_name: str,
        disk_owner: str,
        *,
        overwrite: bool = False,
    ) -> List[str]:
        """Create a blank image named/owned as given, then open it."""
        self.close()
        path = Path(path)
        create_blank_image(self.settings.empty_image_path, path, overwrite=overwrite)
        set_disk_info(path, disk_name, disk_owner)
        logger.info(f"Created disk image {path} (name={disk_name!r}, owner={disk_owner!r})")
        return self.open_image(path)

    def refresh(self) -> List[str]:
        self.directory = self._require_client().list_directory()
        return self.directory

    # -- sample operations -----------------------------------------------

    def import_sample(self, wav_path: Path, sample_name: str) -> List[str]:
        client = self._require_client()
        if not is_mono_8bit_wav(Path(wav_path)):
            raise InvalidWavError(f"{wav_path} is not an 8-bit mono PCM WAV file")
        client.import_sample(Path(wav_path), sample_name)
        return self.refresh()

    def export_sample(self, sample_name: str, dest: Path) -> Optional[Path]:
        """Export a sample; a `.vc` destination keeps the native format, anything else is WAV."""
        client = self._require_client()
        if not sample_name.endswith("VC"):
            raise InvalidSampleError(f"{sample_name} is not a voice-card sample")
        dest = Path(dest)
        if dest.suffix.lower() == ".vc":
            return client.export_sample_as_vc(sample_name, dest)
        client.export_sample(sample_name, dest)
        return dest

    def delete_sample(self, sample_name: str) -> List[str]:
        self._require_client().delete_sample(sample_name)
        return self.refresh()

    def rename_sample(self, sample_name: str, new_name: str) -> List[str]:
        self._require_client().rename_sample(sample_name, new_name)
        return self.refresh()

    # -- conversion ------------------------------------------------------

    def convert_image(
        self,
        destination: Path,
        fmt: Optional[DiskFormat] = None,
        *,
        source: Optional[Path] = None,
        reopen: bool = True,
    ) -> Path:
        """Convert the open image (or `source`) and reopen the source afterwards.

        cmios9 holds the image open, so its session is stopped for the
        duration of the conversion. ExternalToolFailure propagates and leaves
        no session running.
        """
        source = Path(source) if source is not None else self.image_path
        if source is None:
            raise NotRunningError("No disk image is open.")
        self.close()
        job = self.pipeline.plan(source, Path(destination), fmt)
        written = self.pipeline.run(job)
        if reopen:
            self._start(source)
        return written

    def __enter__(self) -> "DiskEditor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
