from __future__ import annotations

import os
from pathlib import Path

import pytest

from vidslicer.errors import FileAccessError, InvalidInputError
from vidslicer.scanner import list_recent_videos, media_identity

_BASE_NS = 1_700_000_000_000_000_000


def _touch(path: Path, offset: int) -> int:
    path.write_bytes(b"video")
    mtime_ns = _BASE_NS + offset * 1_000_000_000
    os.utime(path, ns=(mtime_ns, mtime_ns))
    return mtime_ns


def test_list_recent_videos_orders_newest_first(tmp_path: Path) -> None:
    _touch(tmp_path / "a.mp4", 1)
    newer = _touch(tmp_path / "b.mp4", 2)
    _touch(tmp_path / "c.txt", 3)

    entries = list_recent_videos(tmp_path)

    assert [entry.name for entry in entries] == ["b.mp4", "a.mp4"]
    assert entries[0].identity == f"b.mp4_{newer}"
    assert entries[0].path == tmp_path / "b.mp4"


def test_list_recent_videos_keeps_three(tmp_path: Path) -> None:
    for offset, name in enumerate(["one.mov", "two.MKV", "three.avi", "four.webm", "five.mp4"]):
        _touch(tmp_path / name, offset)

    entries = list_recent_videos(tmp_path)

    assert [entry.name for entry in entries] == ["five.mp4", "four.webm", "three.avi"]


def test_list_recent_videos_skips_directories(tmp_path: Path) -> None:
    (tmp_path / "folder.mp4").mkdir()
    _touch(tmp_path / "clip.webm", 1)

    entries = list_recent_videos(tmp_path)

    assert [entry.name for entry in entries] == ["clip.webm"]


def test_list_recent_videos_empty_directory(tmp_path: Path) -> None:
    assert list_recent_videos(tmp_path) == []


def test_list_recent_videos_rejects_empty_path() -> None:
    with pytest.raises(InvalidInputError):
        list_recent_videos("")


def test_list_recent_videos_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(FileAccessError):
        list_recent_videos(tmp_path / "missing")


def test_media_identity_format() -> None:
    assert media_identity("clip.mp4", 123) == "clip.mp4_123"


def test_media_entry_to_dict(tmp_path: Path) -> None:
    mtime_ns = _touch(tmp_path / "a.mp4", 1)
    (entry,) = list_recent_videos(tmp_path)
    assert entry.to_dict() == {
        "name": "a.mp4",
        "id": f"a.mp4_{mtime_ns}",
        "path": str(tmp_path / "a.mp4"),
    }


def test_list_recent_videos_keeps_enumeration_order_for_ties(tmp_path: Path) -> None:
    for name in ["d.mp4", "a.mp4", "c.mp4", "b.mp4"]:
        _touch(tmp_path / name, 5)
    with os.scandir(tmp_path) as iterator:
        enumerated = [entry.name for entry in iterator]

    entries = list_recent_videos(tmp_path)

    assert [entry.name for entry in entries] == enumerated[:3]


def test_list_recent_videos_skips_entries_that_fail_stat(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _touch(tmp_path / "kept.mp4", 1)
    _touch(tmp_path / "gone.mp4", 2)
    real_stat = Path.stat

    def flaky_stat(self: Path, *args, **kwargs):
        if self.name == "gone.mp4":
            raise FileNotFoundError(self)
        return real_stat(self, *args, **kwargs)

    monkeypatch.setattr(Path, "stat", flaky_stat)

    entries = list_recent_videos(tmp_path)

    assert [entry.name for entry in entries] == ["kept.mp4"]
