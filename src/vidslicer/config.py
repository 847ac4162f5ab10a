from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from .paths import settings_path

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "mp4"
DEFAULT_RESOLUTION = "source"
DEFAULT_CODEC = "default"


@dataclass(frozen=True)
class Settings:
    watch_location: str = ""
    save_location: str = ""
    extension: str = DEFAULT_EXTENSION
    resolution: str = DEFAULT_RESOLUTION
    codec: str = DEFAULT_CODEC
    bitrate: str = ""
    copy_to_clipboard: bool = False


_STR_FIELDS = (
    "watch_location",
    "save_location",
    "extension",
    "resolution",
    "codec",
    "bitrate",
)
_BOOL_FIELDS = ("copy_to_clipboard",)


def load_settings(path: Path | None = None) -> tuple[Settings, str | None]:
    path = path or settings_path()
    if not path.exists():
        return Settings(), None
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        return Settings(), f"Failed to read settings: {path} ({exc})"
    if not raw.strip():
        return Settings(), None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return Settings(), f"Settings file is not valid JSON: {path}"
    if not isinstance(data, dict):
        return Settings(), f"Settings file must be a JSON object: {path}"
    return merge_settings(Settings(), data), None


def save_settings(settings: Settings, path: Path | None = None) -> str | None:
    path = path or settings_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return f"Failed to create settings directory: {path.parent} ({exc})"
    try:
        path.write_text(
            json.dumps(settings_to_dict(settings), ensure_ascii=True, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        return f"Failed to write settings: {path} ({exc})"
    return None


def merge_settings(settings: Settings, data: Mapping[str, Any]) -> Settings:
    """Apply a partial mapping on top of ``settings``.

    A field that is missing from ``data`` or carries the wrong type keeps its
    prior value. Unknown keys are ignored.
    """
    changes: dict[str, Any] = {}
    for key in _STR_FIELDS:
        value = _as_str(data.get(key))
        if value is not None:
            changes[key] = value
    for key in _BOOL_FIELDS:
        value = _as_bool(data.get(key))
        if value is not None:
            changes[key] = value
    ignored = sorted(
        key for key in data if key in _STR_FIELDS + _BOOL_FIELDS and key not in changes
    )
    if ignored:
        logger.debug("Keeping prior settings values for %s", ", ".join(ignored))
    return replace(settings, **changes)


def settings_to_dict(settings: Settings) -> dict[str, Any]:
    return {
        "watch_location": settings.watch_location,
        "save_location": settings.save_location,
        "extension": settings.extension,
        "resolution": settings.resolution,
        "codec": settings.codec,
        "bitrate": settings.bitrate,
        "copy_to_clipboard": settings.copy_to_clipboard,
    }


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    return None


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None
