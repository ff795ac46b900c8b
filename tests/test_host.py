from pathlib import Path

import pytest

from cmifloppy.config import CmiSettings
from cmifloppy.host import direct_launcher, launcher_from_settings, select_launcher, wine_launcher


def test_auto_picks_direct_on_windows_and_wine_elsewhere():
    assert select_launcher("auto", platform="win32").name == "direct"
    assert select_launcher("auto", platform="linux").name == "wine"
    assert select_launcher("auto", platform="darwin").name == "wine"


def test_explicit_modes_and_unknown_mode():
    assert select_launcher("direct", platform="linux").name == "direct"
    assert select_launcher("wine", platform="win32").name == "wine"
    with pytest.raises(ValueError):
        select_launcher("dosbox")


def test_wine_command_puts_executable_first():
    launcher = wine_launcher("wine64")
    cmd = launcher.command(Path("./Files/cmios9.exe"), ["-q1", "/disks/a b.img"])
    assert cmd == ["wine64", "Files/cmios9.exe", "-q1", "/disks/a b.img"]
    assert launcher.needs_compat_layer


def test_direct_command_has_no_prefix():
    launcher = direct_launcher()
    assert launcher.command("cmios9.exe", ["-q1", "x.img"]) == ["cmios9.exe", "-q1", "x.img"]
    assert not launcher.needs_compat_layer


@pytest.mark.skipif(__import__("sys").platform == "win32", reason="POSIX host paths")
def test_wine_guest_path_translation():
    launcher = wine_launcher(guest_drive="Z:")
    assert launcher.to_guest_path("/home/me/samples/kick.wav") == "Z:\\home\\me\\samples\\kick.wav"


def test_relative_paths_are_made_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert direct_launcher().to_guest_path("kick.wav") == str(tmp_path / "kick.wav")


def test_launcher_from_settings():
    cfg = CmiSettings(launcher="wine", wine_cmd="/opt/wine/bin/wine", guest_drive="Y:")
    launcher = launcher_from_settings(cfg)
    assert launcher.prefix == ("/opt/wine/bin/wine",)
    assert launcher.guest_drive == "Y:"
