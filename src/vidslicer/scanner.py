from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .errors import FileAccessError, InvalidInputError

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv", ".webm")
RECENT_LIMIT = 3


@dataclass(frozen=True)
class MediaEntry:
    name: str
    identity: str
    path: Path

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "id": self.identity, "path": str(self.path)}


def media_identity(name: str, mtime_ns: int) -> str:
    return f"{name}_{mtime_ns}"


def is_video_file(name: str) -> bool:
    return Path(name).suffix.lower() in VIDEO_EXTENSIONS


def list_recent_videos(directory: str | Path, limit: int = RECENT_LIMIT) -> list[MediaEntry]:
    """Return the ``limit`` most recently modified videos in ``directory``.

    Entries that vanish between the listing and the stat re-check are
    skipped; that is expected while other processes write into the folder.
    """
    if not str(directory).strip():
        raise InvalidInputError("directory path is empty")
    root = Path(directory).expanduser().absolute()
    try:
        with os.scandir(root) as iterator:
            candidates = [
                entry for entry in iterator if not _is_dir(entry) and is_video_file(entry.name)
            ]
    except OSError as exc:
        raise FileAccessError(f"error reading directory: {root} ({exc})") from exc

    stamped: list[tuple[int, str, Path]] = []
    for entry in candidates:
        path = root / entry.name
        try:
            mtime_ns = path.stat().st_mtime_ns
        except OSError:
            logger.debug("Skipping %s: no longer accessible", path)
            continue
        stamped.append((mtime_ns, entry.name, path))

    # sorted() is stable, so equal timestamps keep enumeration order
    stamped = sorted(stamped, key=lambda item: item[0], reverse=True)
    return [
        MediaEntry(name=name, identity=media_identity(name, mtime_ns), path=path)
        for mtime_ns, name, path in stamped[:limit]
    ]


def _is_dir(entry: os.DirEntry[str]) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False
