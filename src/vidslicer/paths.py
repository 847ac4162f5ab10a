from __future__ import annotations

from pathlib import Path

from platformdirs import user_cache_path, user_config_path, user_videos_path

APP_NAME = "vidslicer"


def cache_root() -> Path:
    root = user_cache_path(APP_NAME)
    root.mkdir(parents=True, exist_ok=True)
    return root


def config_root() -> Path:
    root = user_config_path(APP_NAME)
    root.mkdir(parents=True, exist_ok=True)
    return root


def settings_path() -> Path:
    path = config_root() / "settings"
    path.mkdir(parents=True, exist_ok=True)
    return path / "settings.json"


def uploads_dir() -> Path:
    path = cache_root() / "uploads"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_save_location() -> Path:
    return user_videos_path()
