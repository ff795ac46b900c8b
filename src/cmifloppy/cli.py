from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .commands import Command
from .config import CmiSettings, cli_overrides_from_args
from .convert import DiskFormat
from .editor import DiskEditor
from .errors import (
    CmiFloppyError,
    ExternalToolFailure,
    InvalidSampleError,
    InvalidWavError,
)
from .host import launcher_from_settings
from .logging import configure_logging, truncate
from .tempo import bpm_to_speed
from .tool_check import probe_tools, probe_wine


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID_INPUT = 2


def cmd_preflight(cfg: CmiSettings) -> int:
    ok = True
    launcher = launcher_from_settings(cfg)
    logger.info(f"launcher: {launcher.name}")
    if launcher.needs_compat_layer:
        st = probe_wine(cfg.wine_cmd)
        if st.available:
            logger.info(f"wine: {st.wine_path}")
            logger.info(f"version: {st.wine_version}")
        else:
            logger.error("wine: NOT FOUND")
            if st.error:
                logger.error(st.error)
            logger.error("Wine is not installed. Please install Wine and try again.")
            ok = False

    tools = probe_tools(cfg)
    for name, path in tools.paths.items():
        logger.info(f"{name}: {path}")
    for name, path in tools.missing.items():
        logger.error(f"{name}: NOT FOUND ({path})")
    return EXIT_OK if ok and tools.ok else EXIT_FAILED


def _print_directory(entries: list[str]) -> None:
    for name in entries:
        print(name)


def _with_editor(cfg: CmiSettings, action: Callable[[DiskEditor], Optional[int]]) -> int:
    """Run `action` on a fresh editor and map failures to exit codes."""
    editor = DiskEditor(cfg)
    try:
        rc = action(editor)
        return EXIT_OK if rc is None else rc
    except (InvalidWavError, InvalidSampleError, FileExistsError, ValueError) as e:
        logger.opt(exception=e).error(str(e))
        return EXIT_INVALID_INPUT
    except ExternalToolFailure as e:
        logger.opt(exception=e).error(f"Conversion failed: {e}")
        if e.stderr:
            logger.error(truncate(e.stderr))
        return EXIT_FAILED
    except CmiFloppyError as e:
        logger.opt(exception=e).error(str(e))
        return EXIT_FAILED
    except OSError as e:
        logger.exception(f"I/O error: {e}")
        return EXIT_FAILED
    finally:
        editor.close()


def cmd_dir(cfg: CmiSettings, image: str) -> int:
    def action(ed: DiskEditor) -> None:
        _print_directory(ed.open_image(Path(image)))

    return _with_editor(cfg, action)


def cmd_import(cfg: CmiSettings, image: str, wav: str, name: str) -> int:
    def action(ed: DiskEditor) -> None:
        ed.open_image(Path(image))
        _print_directory(ed.import_sample(Path(wav), name))

    return _with_editor(cfg, action)


def cmd_export(cfg: CmiSettings, image: str, name: str, dest: str) -> int:
    def action(ed: DiskEditor) -> Optional[int]:
        ed.open_image(Path(image))
        written = ed.export_sample(name, Path(dest))
        if written is None:
            logger.error(f"cmios9 did not export {name}")
            return EXIT_FAILED
        logger.info(f"Wrote: {written}")
        return None

    return _with_editor(cfg, action)


def cmd_rm(cfg: CmiSettings, image: str, name: str) -> int:
    def action(ed: DiskEditor) -> None:
        ed.open_image(Path(image))
        _print_directory(ed.delete_sample(name))

    return _with_editor(cfg, action)


def cmd_rename(cfg: CmiSettings, image: str, name: str, new_name: str) -> int:
    def action(ed: DiskEditor) -> None:
        ed.open_image(Path(image))
        _print_directory(ed.rename_sample(name, new_name))

    return _with_editor(cfg, action)


def cmd_create(cfg: CmiSettings, image: str, disk_name: str, disk_owner: str, overwrite: bool) -> int:
    def action(ed: DiskEditor) -> None:
        _print_directory(ed.create_image(Path(image), disk_name, disk_owner, overwrite=overwrite))

    return _with_editor(cfg, action)


def cmd_convert(cfg: CmiSettings, image: str, dest: str, fmt: Optional[str], relist: bool) -> int:
    def action(ed: DiskEditor) -> None:
        target_fmt = DiskFormat(fmt) if fmt else None
        ed.convert_image(Path(dest), target_fmt, source=Path(image), reopen=relist)
        if relist:
            _print_directory(ed.directory)

    return _with_editor(cfg, action)


def cmd_shell(cfg: CmiSettings, image: str) -> int:
    """Pass raw command lines to cmios9 and print whatever it answers."""

    def action(ed: DiskEditor) -> None:
        _print_directory(ed.open_image(Path(image)))
        client = ed.client
        while True:
            try:
                line = input("cmios9> ")
            except EOFError:
                print()
                break
            line = line.strip()
            if not line:
                continue
            if line in ("exit", "quit"):
                break
            out = client.execute(Command(line, cfg.settle_s))
            sys.stdout.write(out)
            sys.stdout.flush()

    return _with_editor(cfg, action)


def cmd_bpm(bpm: float) -> int:
    try:
        speed = bpm_to_speed(bpm)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_INVALID_INPUT
    print(speed)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cmifloppy")
    # Config/Logging options (defaults resolved via CmiSettings)
    p.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ~/.config/cmifloppy/config.toml)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write current effective settings to the config file and exit",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    p.add_argument(
        "--log-json",
        dest="log_json",
        default=None,
        help="Path to write JSON lines log (structured events)",
    )
    p.add_argument(
        "--tools-dir",
        dest="tools_dir",
        default=None,
        help="Directory with cmios9.exe, bin2imd.exe, floptool.exe and empty.img (default from settings)",
    )
    p.add_argument(
        "--launcher",
        choices=["auto", "direct", "wine"],
        default=None,
        help="Run the executables directly or under wine (default from settings: auto)",
    )
    p.add_argument(
        "--warmup",
        dest="warmup_s",
        type=float,
        default=None,
        help="Seconds to wait for the cmios9 banner after start (default from settings)",
    )
    p.add_argument(
        "--settle",
        dest="settle_s",
        type=float,
        default=None,
        help="Seconds to wait after each command before reading output (default from settings)",
    )
    p.add_argument(
        "--settle-mode",
        dest="settle_mode",
        choices=["fixed", "quiet"],
        default=None,
        help="fixed: always wait --settle; quiet: wait until cmios9 stops printing",
    )
    p.add_argument(
        "--work-dir",
        dest="work_dir",
        default=None,
        help="cmios9 working directory; native exports land here before being moved",
    )
    p.add_argument(
        "--temp-dir",
        dest="temp_dir",
        default=None,
        help="Directory for intermediate .imd files (default: system temp)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("preflight", help="Check wine and the CMI executables")

    p_dir = sub.add_parser("dir", help="List the samples on a disk image")
    p_dir.add_argument("image", help="Disk image (.img)")

    p_import = sub.add_parser("import", help="Import an 8-bit mono WAV as a voice-card sample")
    p_import.add_argument("image", help="Disk image (.img)")
    p_import.add_argument("wav", help="8-bit mono PCM WAV file")
    p_import.add_argument("name", help="Sample name without extension (.VC is appended)")

    p_export = sub.add_parser("export", help="Export a sample as WAV, or as .vc if DEST ends in .vc")
    p_export.add_argument("image", help="Disk image (.img)")
    p_export.add_argument("name", help="Sample name as listed, e.g. PIANO.VC")
    p_export.add_argument("dest", help="Output .wav or .vc path")

    p_rm = sub.add_parser("rm", help="Delete a sample")
    p_rm.add_argument("image", help="Disk image (.img)")
    p_rm.add_argument("name", help="Sample name as listed")

    p_rename = sub.add_parser("rename", help="Rename a sample")
    p_rename.add_argument("image", help="Disk image (.img)")
    p_rename.add_argument("name", help="Sample name as listed")
    p_rename.add_argument("new_name", help="New name without extension (.VC is appended)")

    p_create = sub.add_parser("create", help="Create a blank disk image")
    p_create.add_argument("image", help="Output disk image (.img)")
    p_create.add_argument("--name", dest="disk_name", required=True, help="Disk name (up to 8 characters)")
    p_create.add_argument("--owner", dest="disk_owner", required=True, help="Disk owner (up to 20 characters)")
    p_create.add_argument("--overwrite", action="store_true", help="Replace an existing file")

    p_convert = sub.add_parser("convert", help="Convert a disk image to IMD, MFI or MFM")
    p_convert.add_argument("image", help="Source disk image (.img)")
    p_convert.add_argument("dest", help="Output path")
    p_convert.add_argument(
        "--to",
        dest="fmt",
        choices=[f.value for f in DiskFormat],
        default=None,
        help="Target format (default: from the output extension)",
    )
    p_convert.add_argument(
        "--relist",
        action="store_true",
        help="Reopen the source image afterwards and print its directory",
    )

    p_shell = sub.add_parser("shell", help="Interactive cmios9 console on a disk image")
    p_shell.add_argument("image", help="Disk image (.img)")

    p_bpm = sub.add_parser("bpm", help="Print the CMI sequencer speed value for a tempo")
    p_bpm.add_argument("bpm", type=float, help="Tempo in beats per minute")
    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    # Load settings: defaults + TOML + env + CLI overrides
    overrides = cli_overrides_from_args(args)
    config_path = Path(args.config_path).expanduser() if args.config_path else None
    cfg = CmiSettings.load(config_path=config_path, overrides=overrides)

    # Write config and exit if requested
    if args.write_config:
        written = cfg.write(config_path)
        print(f"Config written to: {written}")
        return EXIT_OK

    configure_logging(cfg.log_level, cfg.log_json)
    if args.cmd == "preflight":
        return cmd_preflight(cfg)
    if args.cmd == "dir":
        return cmd_dir(cfg, args.image)
    if args.cmd == "import":
        return cmd_import(cfg, args.image, args.wav, args.name)
    if args.cmd == "export":
        return cmd_export(cfg, args.image, args.name, args.dest)
    if args.cmd == "rm":
        return cmd_rm(cfg, args.image, args.name)
    if args.cmd == "rename":
        return cmd_rename(cfg, args.image, args.name, args.new_name)
    if args.cmd == "create":
        return cmd_create(cfg, args.image, args.disk_name, args.disk_owner, args.overwrite)
    if args.cmd == "convert":
        return cmd_convert(cfg, args.image, args.dest, args.fmt, args.relist)
    if args.cmd == "shell":
        return cmd_shell(cfg, args.image)
    if args.cmd == "bpm":
        return cmd_bpm(args.bpm)
    p.error("unknown command")
    return EXIT_FAILED


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
