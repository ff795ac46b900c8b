import sys
import textwrap
from pathlib import Path

import pytest

from cmifloppy.host import HostLauncher
from cmifloppy.session import CmiSession


FAKE_CMIOS = textwrap.dedent(
    '''
    import os
    import sys

    print("CMI OS 9 (fake) - disk", sys.argv[-1], flush=True)
    files = ["FOO.VC", "BARBAZ.VC"]


    def listing():
        print("fnr  name          size")
        print("----------------------")
        for i, f in enumerate(files, 1):
            name, ext = f.split(".")
            print(f"  {i}  {name:<8}.{ext}")
        print("----------------------", flush=True)


    for line in sys.stdin:
        cmd = line.split()
        if not cmd:
            continue
        op, args = cmd[0], cmd[1:]
        if op == "dir":
            listing()
        elif op == "wav2vc2":
            files.append(args[1])
            print("converted", args[0], flush=True)
        elif op == "vc2wav":
            with open(args[1], "wb") as f:
                f.write(b"RIFF")
            print("wrote", args[1], flush=True)
        elif op == "export":
            name = args[0] if args[0].endswith(".VC") else args[0] + ".VC"
            with open(os.path.join(os.getcwd(), name), "wb") as f:
                f.write(b"VCDATA")
            print("exported", name, flush=True)
        elif op == "rm":
            files.remove(args[0])
            print("deleted", args[0], flush=True)
        elif op == "move":
            files[files.index(args[0])] = args[1]
            print("moved", args[0], flush=True)
        elif op == "err":
            print("disk error", file=sys.stderr, flush=True)
        elif op == "exit":
            sys.exit(0)
        else:
            print("unknown command", op, flush=True)
    '''
)

@pytest.fixture
def fake_cmios(tmp_path: Path) -> Path:
    script = tmp_path / "fake_cmios9.py"
    script.write_text(FAKE_CMIOS, encoding="utf-8")
    return script


@pytest.fixture
def python_launcher() -> HostLauncher:
    # Runs the fake script with the current interpreter; host paths unchanged.
    return HostLauncher(name="python", prefix=(sys.executable,))


@pytest.fixture
def image(tmp_path: Path) -> Path:
    img = tmp_path / "disk.img"
    img.write_bytes(b"\x00" * 64)
    return img


@pytest.fixture
def make_session(fake_cmios: Path, python_launcher: HostLauncher, image: Path, tmp_path: Path):
    sessions = []

    def factory(image_path: Path = image, **kwargs) -> CmiSession:
        kwargs.setdefault("warmup_s", 0.3)
        kwargs.setdefault("work_dir", tmp_path)
        s = CmiSession(image_path, cmios_exe=fake_cmios, launcher=python_launcher, **kwargs)
        sessions.append(s)
        return s

    yield factory
    for s in sessions:
        s.stop()


@pytest.fixture
def read_disk_info():
    """Decode the name (8 bytes at 0) and owner (20 bytes at 18) from an image header."""

    def read(path: Path) -> tuple[str, str]:
        data = Path(path).read_bytes()
        return (
            data[0:8].split(b"\x00", 1)[0].decode("ascii"),
            data[18:38].split(b"\x00", 1)[0].decode("ascii"),
        )

    return read
