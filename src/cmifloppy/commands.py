"""cmios9 command grammar.

Every user intent maps to one literal console line. cmios9 never acknowledges
a command, so each one carries the settle delay the caller waits before
reading its output. Paths must already be spelled for the guest (see
`HostLauncher.to_guest_path`).
"""
from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SETTLE_S = 0.5
SAMPLE_EXT = ".VC"


@dataclass(frozen=True)
class Command:
    text: str
    settle_s: float = DEFAULT_SETTLE_S

    def __str__(self) -> str:
        return self.text


def _check_token(value: str, what: str) -> str:
    # cmios9 splits arguments on whitespace; an embedded space or line break
    # would shift arguments or inject a second command.
    if not value or any(c.isspace() for c in value):
        raise ValueError(f"{what} must be a non-empty token without whitespace: {value!r}")
    return value


def dir_command(settle_s: float = DEFAULT_SETTLE_S) -> Command:
    return Command("dir", settle_s)


def import_command(guest_wav_path: str, sample_name: str, settle_s: float = DEFAULT_SETTLE_S) -> Command:
    """wav2vc2 <src> <name>.VC"""
    _check_token(guest_wav_path, "WAV path")
    _check_token(sample_name, "sample name")
    return Command(f"wav2vc2 {guest_wav_path} {sample_name}{SAMPLE_EXT}", settle_s)


def export_wav_command(sample_name: str, guest_dst_path: str, settle_s: float = DEFAULT_SETTLE_S) -> Command:
    """vc2wav <name> <dst>"""
    _check_token(sample_name, "sample name")
    _check_token(guest_dst_path, "destination path")
    return Command(f"vc2wav {sample_name} {guest_dst_path}", settle_s)


def export_vc_command(sample_name: str, settle_s: float = DEFAULT_SETTLE_S) -> Command:
    """export <name>; cmios9 writes <name>.VC into its working directory."""
    _check_token(sample_name, "sample name")
    return Command(f"export {sample_name}", settle_s)


def delete_command(sample_name: str, settle_s: float = DEFAULT_SETTLE_S) -> Command:
    _check_token(sample_name, "sample name")
    return Command(f"rm {sample_name}", settle_s)


def rename_command(sample_name: str, new_name: str, settle_s: float = DEFAULT_SETTLE_S) -> Command:
    """move <name> <new-name>.VC"""
    _check_token(sample_name, "sample name")
    _check_token(new_name, "new sample name")
    return Command(f"move {sample_name} {new_name}{SAMPLE_EXT}", settle_s)


def exported_file_name(sample_name: str) -> str:
    """File name `export` leaves in the cmios9 working directory."""
    return sample_name if sample_name.endswith(SAMPLE_EXT) else sample_name + SAMPLE_EXT
