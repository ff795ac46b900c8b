"""Disk-image and sample file helpers.

- Blank images are copies of a template shipped next to the executables.
- The CMI disk header holds the disk name (8 bytes at offset 0) and the owner
  (20 bytes at offset 18), ASCII, unpadded.
- cmios9 only imports 8-bit mono PCM WAV files.
"""
from __future__ import annotations

import shutil
from pathlib import Path

from loguru import logger

from .errors import TemplateMissingError

DISK_NAME_OFFSET = 0
DISK_NAME_LEN = 8
DISK_OWNER_OFFSET = 18
DISK_OWNER_LEN = 20

WAVE_FORMAT_PCM = 1


def create_blank_image(template: Path, dest: Path, *, overwrite: bool = False) -> Path:
    """Copy the blank template to `dest`.

    Raises TemplateMissingError if the template is absent and FileExistsError
    if `dest` exists and `overwrite` is False.
    """
    template = Path(template)
    dest = Path(dest)
    if not template.is_file():
        raise TemplateMissingError(f"Blank disk image not found: {template}")
    if dest.exists():
        if not overwrite:
            raise FileExistsError(f"Disk image already exists: {dest}")
        dest.unlink()
    shutil.copyfile(template, dest)
    logger.debug(f"Created {dest} from {template}")
    return dest


def _patch(data: bytearray, offset: int, length: int, value: str) -> None:
    raw = value.encode("ascii", errors="replace")[:length]
    data[offset:offset + len(raw)] = raw


def set_disk_info(path: Path, disk_name: str, disk_owner: str) -> None:
    """Write the disk name and owner into the image header."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Cannot set disk info, {path} does not exist")
        return
    data = bytearray(path.read_bytes())
    _patch(data, DISK_NAME_OFFSET, DISK_NAME_LEN, disk_name)
    _patch(data, DISK_OWNER_OFFSET, DISK_OWNER_LEN, disk_owner)
    path.write_bytes(bytes(data))


def is_mono_8bit_wav(path: Path) -> bool:
    """True if `path` is an uncompressed (PCM) mono 8-bit WAV file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"The specified file does not exist: {path}")
    from mutagen import MutagenError
    from mutagen.wave import WAVE

    try:
        info = WAVE(str(path)).info
    except MutagenError as e:
        logger.debug(f"{path} is not a readable WAV file: {e}")
        return False
    return (
        getattr(info, "audio_format", None) == WAVE_FORMAT_PCM
        and info.channels == 1
        and info.bits_per_sample == 8
    )
