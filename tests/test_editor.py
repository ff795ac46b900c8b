import sys
import wave
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from cmifloppy.config import CmiSettings
from cmifloppy.convert import ConversionJob, ConversionPipeline, DiskFormat
from cmifloppy.editor import DiskEditor
from cmifloppy.errors import ExternalToolFailure, InvalidSampleError, InvalidWavError, NotRunningError
from cmifloppy.host import direct_launcher

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="fake cmios9 uses POSIX pipes")


def write_wav(path: Path, channels: int = 1, sampwidth: int = 1) -> Path:
    with wave.open(str(path), "wb") as w:
        w.setnchannels(channels)
        w.setsampwidth(sampwidth)
        w.setframerate(16000)
        w.writeframes(b"\x80" * 64 * channels * sampwidth)
    return path


@pytest.fixture
def pipeline():
    return MagicMock(spec=ConversionPipeline)


@pytest.fixture
def editor(tmp_path, make_session, pipeline):
    cfg = CmiSettings(tools_dir=str(tmp_path), settle_s=0.3)
    ed = DiskEditor(
        cfg,
        launcher=direct_launcher(),
        session_factory=lambda path: make_session(path),
        pipeline=pipeline,
    )
    yield ed
    ed.close()


def test_operations_need_an_open_image():
    ed = DiskEditor(CmiSettings(), launcher=direct_launcher(), pipeline=MagicMock())
    assert not ed.is_open
    with pytest.raises(NotRunningError):
        ed.refresh()
    with pytest.raises(NotRunningError):
        ed.delete_sample("FOO.VC")
    with pytest.raises(NotRunningError):
        ed.convert_image(Path("out.imd"))


def test_open_image_lists_directory(editor, image):
    assert editor.open_image(image) == ["FOO.VC", "BARBAZ.VC"]
    assert editor.is_open
    assert editor.image_path == image
    assert editor.directory == ["FOO.VC", "BARBAZ.VC"]


def test_open_replaces_previous_session(editor, image):
    editor.open_image(image)
    first = editor.session
    editor.open_image(image)
    assert editor.session is not first
    assert not first.is_running


def test_import_valid_wav(editor, image, tmp_path):
    editor.open_image(image)
    wav = write_wav(tmp_path / "snare.wav")
    assert editor.import_sample(wav, "SNARE") == ["FOO.VC", "BARBAZ.VC", "SNARE.VC"]


def test_import_rejects_stereo_wav(editor, image, tmp_path):
    editor.open_image(image)
    wav = write_wav(tmp_path / "stereo.wav", channels=2)
    with pytest.raises(InvalidWavError):
        editor.import_sample(wav, "STEREO")
    assert editor.directory == ["FOO.VC", "BARBAZ.VC"]


def test_delete_and_rename_refresh_directory(editor, image):
    editor.open_image(image)
    assert editor.rename_sample("FOO.VC", "KICK") == ["KICK.VC", "BARBAZ.VC"]
    assert editor.delete_sample("BARBAZ.VC") == ["KICK.VC"]


def test_export_requires_voice_card_sample(editor, image, tmp_path):
    editor.open_image(image)
    with pytest.raises(InvalidSampleError):
        editor.export_sample("SEQUENCE.SQ", tmp_path / "seq.wav")


def test_export_by_destination_suffix(editor, image, tmp_path):
    editor.open_image(image)
    vc = editor.export_sample("FOO.VC", tmp_path / "foo.vc")
    assert vc == tmp_path / "foo.vc"
    assert vc.read_bytes() == b"VCDATA"

    wav = editor.export_sample("FOO.VC", tmp_path / "foo.wav")
    assert wav == tmp_path / "foo.wav"
    assert wav.read_bytes() == b"RIFF"


def test_create_image_from_template(editor, tmp_path, read_disk_info):
    (tmp_path / "empty.img").write_bytes(b"\x00" * 128)
    dest = tmp_path / "new.img"

    assert editor.create_image(dest, "VOICES", "Studio") == ["FOO.VC", "BARBAZ.VC"]
    assert read_disk_info(dest) == ("VOICES", "Studio")
    assert editor.image_path == dest


def test_convert_stops_session_then_reopens(editor, pipeline, image, tmp_path):
    editor.open_image(image)
    before = editor.session
    dest = tmp_path / "disk.mfi"
    job = ConversionJob(image, dest, DiskFormat.MFI, tmp_path / "x.imd")
    pipeline.plan.return_value = job
    seen = {}

    def run(j):
        seen["open"] = editor.is_open
        seen["before_running"] = before.is_running
        return dest

    pipeline.run.side_effect = run

    assert editor.convert_image(dest) == dest

    pipeline.plan.assert_called_once_with(image, dest, None)
    pipeline.run.assert_called_once_with(job)
    assert seen == {"open": False, "before_running": False}
    assert editor.is_open
    assert editor.session is not before
    assert editor.directory == ["FOO.VC", "BARBAZ.VC"]


def test_convert_failure_leaves_no_session(editor, pipeline, image, tmp_path):
    editor.open_image(image)
    pipeline.plan.return_value = ConversionJob(image, tmp_path / "disk.imd", DiskFormat.IMD)
    pipeline.run.side_effect = ExternalToolFailure("bin2imd", ["bin2imd.exe"], returncode=1)

    with pytest.raises(ExternalToolFailure):
        editor.convert_image(tmp_path / "disk.imd", DiskFormat.IMD)

    assert not editor.is_open


def test_convert_explicit_source_without_reopen(editor, pipeline, image, tmp_path):
    dest = tmp_path / "disk.imd"
    pipeline.plan.return_value = ConversionJob(image, dest, DiskFormat.IMD)
    pipeline.run.return_value = dest

    assert editor.convert_image(dest, source=image, reopen=False) == dest
    assert not editor.is_open


def test_context_manager_closes(tmp_path, make_session, image):
    with DiskEditor(
        CmiSettings(settle_s=0.3),
        launcher=direct_launcher(),
        session_factory=lambda path: make_session(path),
        pipeline=MagicMock(),
    ) as ed:
        ed.open_image(image)
        session = ed.session
    assert not session.is_running
    assert ed.session is None
