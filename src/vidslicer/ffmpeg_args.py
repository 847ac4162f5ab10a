from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidInputError

FFMPEG_ENV = "VIDSLICER_FFMPEG"
MUTED_SUFFIX = ":muted"
AUDIO_BITRATE = "128k"
THUMBNAIL_NAME = "thumbnail.jpg"

# codec -> (encoder, preset)
_CODECS: dict[str, tuple[str, str]] = {
    "h264_nvenc": ("h264_nvenc", "p4"),
    "hevc_nvenc": ("hevc_nvenc", "p4"),
    "libx264": ("libx264", "medium"),
    "libx265": ("libx265", "medium"),
}
_DEFAULT_CODEC = _CODECS["libx264"]

_SCALE_FILTERS = {
    "1080p": "scale=-1:1080",
    "720p": "scale=-1:720",
    "480p": "scale=-1:480",
}


@dataclass(frozen=True)
class ExportRequest:
    source: Path
    start: float
    end: float
    title: str = ""
    extension: str = "mp4"
    codec: str = "default"
    resolution: str = "source"
    bitrate: str = ""

    def __post_init__(self) -> None:
        if not (math.isfinite(self.start) and math.isfinite(self.end)):
            raise InvalidInputError("start and end times must be finite numbers")
        if self.end < self.start:
            raise InvalidInputError("end time must not be before start time")
        if self.start < 0:
            raise InvalidInputError("start time must be non-negative")


@dataclass(frozen=True)
class CropRegion:
    width: int
    height: int
    x: int = 0
    y: int = 0

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError("crop width and height must be positive")
        if self.x < 0 or self.y < 0:
            raise InvalidInputError("crop offsets must be non-negative")

    def to_filter(self) -> str:
        return f"crop={self.width}:{self.height}:{self.x}:{self.y}"


@dataclass(frozen=True)
class CodecChoice:
    encoder: str
    preset: str
    muted: bool


def ffmpeg_executable() -> str:
    return os.environ.get(FFMPEG_ENV) or "ffmpeg"


def parse_codec(value: str) -> CodecChoice:
    name = value.strip()
    muted = name.endswith(MUTED_SUFFIX)
    if muted:
        name = name[: -len(MUTED_SUFFIX)]
    encoder, preset = _CODECS.get(name.lower(), _DEFAULT_CODEC)
    return CodecChoice(encoder=encoder, preset=preset, muted=muted)


def scale_filter(resolution: str) -> str | None:
    return _SCALE_FILTERS.get(resolution.strip().lower())


def normalize_extension(extension: str) -> str:
    return extension.strip().lower().lstrip(".") or "mp4"


def derive_title(source: Path, title: str, suffix: str = "_clip") -> str:
    title = title.strip()
    if title:
        return title
    return f"{Path(source).stem}{suffix}"


def output_path_for(request: ExportRequest, save_location: Path, suffix: str = "_clip") -> Path:
    title = derive_title(request.source, request.title, suffix)
    return Path(save_location) / f"{title}.{normalize_extension(request.extension)}"


def build_export_command(request: ExportRequest, save_location: Path) -> list[str]:
    output_path = output_path_for(request, save_location)
    return _build_transcode_command(request, output_path, crop=None)


def build_crop_command(
    request: ExportRequest,
    region: CropRegion,
    save_location: Path,
) -> list[str]:
    output_path = output_path_for(request, save_location, suffix="_cropped")
    return _build_transcode_command(request, output_path, crop=region)


def build_thumbnail_command(video_path: Path, output_path: Path) -> list[str]:
    return [
        ffmpeg_executable(),
        "-i",
        str(video_path),
        "-ss",
        "00:00:01",
        "-vframes",
        "1",
        "-vf",
        "scale=320:-1",
        "-q:v",
        "2",
        str(output_path),
    ]


def format_timestamp(value: float) -> str:
    return f"{value:.2f}"


def _build_transcode_command(
    request: ExportRequest,
    output_path: Path,
    crop: CropRegion | None,
) -> list[str]:
    extension = normalize_extension(request.extension)
    codec = parse_codec(request.codec)
    is_gif = extension == "gif"

    command = [
        ffmpeg_executable(),
        "-i",
        str(request.source),
        "-ss",
        format_timestamp(request.start),
        "-t",
        format_timestamp(request.end - request.start),
    ]

    filters = [crop.to_filter()] if crop is not None else []
    scale = scale_filter(request.resolution)
    if scale:
        filters.append(scale)
    if filters:
        command += ["-vf", ",".join(filters)]

    # the gif muxer picks its own encoder; an h264/hevc encoder cannot feed it
    if not is_gif:
        command += ["-c:v", codec.encoder, "-preset", codec.preset]

    bitrate = request.bitrate.strip()
    if bitrate:
        command += ["-b:v", f"{bitrate.rstrip('kK')}k"]

    if is_gif:
        command += ["-an", "-loop", "0"]
    elif codec.muted:
        command += ["-an"]
    else:
        command += ["-c:a", "aac", "-b:a", AUDIO_BITRATE]

    command += ["-y", str(output_path)]
    return command
