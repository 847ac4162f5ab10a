from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from vidslicer.encoder import crop_video, export_clip, generate_thumbnail, run_encoder
from vidslicer.errors import ExternalToolError
from vidslicer.ffmpeg_args import CropRegion, ExportRequest


def test_run_encoder_success() -> None:
    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    completed = run_encoder(["ffmpeg", "-version"], runner)
    assert completed.returncode == 0


def test_run_encoder_failure_reports_last_line() -> None:
    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(command, 1, stdout="", stderr="header\nInvalid data found\n")

    with pytest.raises(ExternalToolError) as excinfo:
        run_encoder(["ffmpeg", "-i", "broken.mp4"], runner)
    assert excinfo.value.message == "Invalid data found"
    assert excinfo.value.returncode == 1


def test_run_encoder_failure_without_output() -> None:
    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(command, 183, stdout="", stderr="")

    with pytest.raises(ExternalToolError, match="exit code 183"):
        run_encoder(["ffmpeg"], runner)


def test_run_encoder_missing_tool() -> None:
    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError(command[0])

    with pytest.raises(ExternalToolError, match="not found"):
        run_encoder(["ffmpeg"], runner)


def test_generate_thumbnail_reads_and_cleans_up() -> None:
    seen: list[Path] = []

    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        output = Path(command[-1])
        seen.append(output)
        output.write_bytes(b"\xff\xd8jpeg")
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    data = generate_thumbnail(Path("clip.mp4"), runner)
    assert data == b"\xff\xd8jpeg"
    assert seen and not seen[0].parent.exists()


def test_generate_thumbnail_cleans_up_on_failure() -> None:
    seen: list[Path] = []

    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        output = Path(command[-1])
        seen.append(output)
        output.write_bytes(b"partial")
        return subprocess.CompletedProcess(command, 1, stdout="", stderr="boom")

    with pytest.raises(ExternalToolError):
        generate_thumbnail(Path("clip.mp4"), runner)
    assert seen and not seen[0].parent.exists()


def test_generate_thumbnail_without_output_file() -> None:
    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    with pytest.raises(ExternalToolError, match="did not write"):
        generate_thumbnail(Path("clip.mp4"), runner)


def test_export_clip_creates_save_location(tmp_path: Path) -> None:
    commands: list[list[str]] = []

    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        commands.append(command)
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    save_location = tmp_path / "exports" / "nested"
    request = ExportRequest(source=tmp_path / "game.mp4", start=1, end=2)
    output = export_clip(request, save_location, runner)

    assert save_location.is_dir()
    assert output == save_location / "game_clip.mp4"
    assert commands[0][-1] == str(output)


def test_export_clip_failure_propagates(tmp_path: Path) -> None:
    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(command, 1, stdout="", stderr="Unknown encoder 'h264_nvenc'")

    request = ExportRequest(source=tmp_path / "game.mp4", start=1, end=2, codec="h264_nvenc")
    with pytest.raises(ExternalToolError, match="Unknown encoder"):
        export_clip(request, tmp_path, runner)


def test_crop_video_output_name(tmp_path: Path) -> None:
    def runner(command: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    request = ExportRequest(source=tmp_path / "game.mp4", start=0, end=5)
    output = crop_video(request, CropRegion(width=100, height=100), tmp_path, runner)
    assert output == tmp_path / "game_cropped.mp4"
