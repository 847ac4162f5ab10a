from __future__ import annotations

import logging
import subprocess
import sys
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from .errors import ExternalToolError, FileAccessError
from .ffmpeg_args import (
    THUMBNAIL_NAME,
    CropRegion,
    ExportRequest,
    build_crop_command,
    build_export_command,
    build_thumbnail_command,
    output_path_for,
)

logger = logging.getLogger(__name__)

Runner = Callable[[list[str]], subprocess.CompletedProcess[str]]


class EncodeState(Enum):
    BUILT = "built"
    LAUNCHED = "launched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def run_encoder(command: list[str], runner: Runner | None = None) -> subprocess.CompletedProcess[str]:
    """Run one encoder invocation to completion.

    Raises ``ExternalToolError`` when the tool cannot be started or exits
    nonzero. There are no retries.
    """
    runner = runner or _run_subprocess
    tool = Path(command[0]).name
    logger.debug("%s %s: %s", tool, EncodeState.BUILT.value, command)
    try:
        logger.debug("%s %s", tool, EncodeState.LAUNCHED.value)
        completed = runner(command)
    except FileNotFoundError as exc:
        logger.debug("%s %s: not found", tool, EncodeState.FAILED.value)
        raise ExternalToolError(f"{tool} not found on PATH") from exc
    except OSError as exc:
        logger.debug("%s %s: %s", tool, EncodeState.FAILED.value, exc)
        raise ExternalToolError(f"Failed to launch {tool}: {exc}") from exc
    if completed.returncode != 0:
        message = _summarize_error(completed, tool)
        logger.debug("%s %s: %s", tool, EncodeState.FAILED.value, message)
        raise ExternalToolError(message, completed.returncode)
    logger.debug("%s %s", tool, EncodeState.SUCCEEDED.value)
    return completed


def generate_thumbnail(video_path: Path, runner: Runner | None = None) -> bytes:
    with tempfile.TemporaryDirectory(prefix="vidslicer-thumb-") as temp_dir:
        output_path = Path(temp_dir) / THUMBNAIL_NAME
        run_encoder(build_thumbnail_command(video_path, output_path), runner)
        try:
            return output_path.read_bytes()
        except OSError as exc:
            raise ExternalToolError("ffmpeg did not write thumbnail") from exc


def export_clip(
    request: ExportRequest,
    save_location: Path,
    runner: Runner | None = None,
) -> Path:
    _ensure_save_location(save_location)
    command = build_export_command(request, save_location)
    run_encoder(command, runner)
    output_path = output_path_for(request, save_location)
    logger.info("Exported %s", output_path)
    return output_path


def crop_video(
    request: ExportRequest,
    region: CropRegion,
    save_location: Path,
    runner: Runner | None = None,
) -> Path:
    _ensure_save_location(save_location)
    command = build_crop_command(request, region, save_location)
    run_encoder(command, runner)
    output_path = output_path_for(request, save_location, suffix="_cropped")
    logger.info("Cropped %s", output_path)
    return output_path


def launch_options() -> dict[str, Any]:
    """Keyword arguments that keep the child from opening a console window."""
    if sys.platform != "win32":
        return {}
    startupinfo = subprocess.STARTUPINFO()
    startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
    startupinfo.wShowWindow = subprocess.SW_HIDE
    return {
        "startupinfo": startupinfo,
        "creationflags": subprocess.CREATE_NO_WINDOW,
    }


def _ensure_save_location(save_location: Path) -> None:
    try:
        Path(save_location).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileAccessError(f"error creating save directory: {save_location} ({exc})") from exc


def _run_subprocess(command: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        command,
        check=False,
        capture_output=True,
        text=True,
        errors="replace",
        **launch_options(),
    )


def _summarize_error(completed: subprocess.CompletedProcess[str], tool: str) -> str:
    stderr = completed.stderr or ""
    stdout = completed.stdout or ""
    message = stderr.strip() or stdout.strip()
    if not message:
        return f"{tool} failed with exit code {completed.returncode}"
    return message.splitlines()[-1]
