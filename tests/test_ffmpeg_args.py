from __future__ import annotations

from pathlib import Path

import pytest

from vidslicer.errors import InvalidInputError
from vidslicer.ffmpeg_args import (
    CropRegion,
    ExportRequest,
    build_crop_command,
    build_export_command,
    build_thumbnail_command,
    derive_title,
    parse_codec,
)


@pytest.fixture(autouse=True)
def _default_ffmpeg(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VIDSLICER_FFMPEG", raising=False)


def _value_after(command: list[str], flag: str) -> str:
    return command[command.index(flag) + 1]


def test_export_command_duration_and_scale() -> None:
    request = ExportRequest(
        source=Path("/videos/match.mp4"),
        start=1.0,
        end=3.0,
        codec="libx264",
        resolution="720p",
        extension="mp4",
    )
    cmd = build_export_command(request, Path("/out"))
    assert cmd[0] == "ffmpeg"
    assert _value_after(cmd, "-i") == str(Path("/videos/match.mp4"))
    assert _value_after(cmd, "-ss") == "1.00"
    assert _value_after(cmd, "-t") == "2.00"
    assert _value_after(cmd, "-vf") == "scale=-1:720"
    assert _value_after(cmd, "-c:v") == "libx264"
    assert _value_after(cmd, "-preset") == "medium"
    assert _value_after(cmd, "-c:a") == "aac"
    assert cmd[-2] == "-y"
    assert cmd[-1] == str(Path("/out") / "match_clip.mp4")


def test_export_command_is_deterministic() -> None:
    request = ExportRequest(source=Path("a.mkv"), start=0.5, end=9.25, codec="hevc_nvenc:muted")
    assert build_export_command(request, Path("out")) == build_export_command(request, Path("out"))


def test_source_resolution_has_no_filter() -> None:
    for resolution in ("source", ""):
        request = ExportRequest(source=Path("a.mp4"), start=0, end=1, resolution=resolution)
        assert "-vf" not in build_export_command(request, Path("out"))


def test_unknown_codec_falls_back_to_libx264() -> None:
    for codec in ("default", "vp9", ""):
        choice = parse_codec(codec)
        assert (choice.encoder, choice.preset, choice.muted) == ("libx264", "medium", False)


def test_muted_codec_drops_audio() -> None:
    request = ExportRequest(source=Path("a.mp4"), start=0, end=1, codec="h264_nvenc:muted")
    cmd = build_export_command(request, Path("out"))
    assert "-an" in cmd
    assert "aac" not in cmd
    assert _value_after(cmd, "-c:v") == "h264_nvenc"


def test_gif_drops_audio_and_loops() -> None:
    request = ExportRequest(source=Path("a.mp4"), start=0, end=1, extension="gif", codec="libx265")
    cmd = build_export_command(request, Path("out"))
    assert "-an" in cmd
    assert "-c:a" not in cmd
    assert "aac" not in cmd
    assert _value_after(cmd, "-loop") == "0"
    assert cmd[-1].endswith("a_clip.gif")


def test_bitrate_gets_kilobit_suffix() -> None:
    request = ExportRequest(source=Path("a.mp4"), start=0, end=1, bitrate="5000")
    cmd = build_export_command(request, Path("out"))
    assert _value_after(cmd, "-b:v") == "5000k"


def test_missing_bitrate_is_omitted() -> None:
    request = ExportRequest(source=Path("a.mp4"), start=0, end=1)
    assert "-b:v" not in build_export_command(request, Path("out"))


def test_explicit_title_is_used() -> None:
    request = ExportRequest(source=Path("a.mp4"), start=0, end=1, title="Best Goal", extension=".MKV")
    cmd = build_export_command(request, Path("out"))
    assert cmd[-1] == str(Path("out") / "Best Goal.mkv")


def test_crop_command_prepends_crop_filter() -> None:
    request = ExportRequest(source=Path("clip.mov"), start=2, end=4.5, resolution="480p")
    region = CropRegion(width=640, height=360, x=10, y=20)
    cmd = build_crop_command(request, region, Path("out"))
    assert _value_after(cmd, "-vf") == "crop=640:360:10:20,scale=-1:480"
    assert _value_after(cmd, "-t") == "2.50"
    assert cmd[-1] == str(Path("out") / "clip_cropped.mp4")


def test_derive_title() -> None:
    assert derive_title(Path("/x/holiday.final.mp4"), "") == "holiday.final_clip"
    assert derive_title(Path("/x/holiday.mp4"), "", "_cropped") == "holiday_cropped"
    assert derive_title(Path("/x/holiday.mp4"), "  named ") == "named"


def test_thumbnail_command() -> None:
    cmd = build_thumbnail_command(Path("in.mp4"), Path("tmp/thumbnail.jpg"))
    assert _value_after(cmd, "-ss") == "00:00:01"
    assert _value_after(cmd, "-vframes") == "1"
    assert _value_after(cmd, "-vf") == "scale=320:-1"
    assert cmd[-1] == str(Path("tmp/thumbnail.jpg"))


def test_ffmpeg_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VIDSLICER_FFMPEG", "/opt/ffmpeg/bin/ffmpeg")
    cmd = build_thumbnail_command(Path("in.mp4"), Path("out.jpg"))
    assert cmd[0] == "/opt/ffmpeg/bin/ffmpeg"


def test_request_validation() -> None:
    with pytest.raises(InvalidInputError):
        ExportRequest(source=Path("a.mp4"), start=3, end=1)
    with pytest.raises(InvalidInputError):
        CropRegion(width=0, height=10)


@pytest.mark.parametrize(
    ("start", "end"),
    [(float("nan"), 1.0), (0.0, float("nan")), (0.0, float("inf")), (float("-inf"), 1.0)],
)
def test_request_rejects_non_finite_times(start: float, end: float) -> None:
    with pytest.raises(InvalidInputError):
        ExportRequest(source=Path("a.mp4"), start=start, end=end)
