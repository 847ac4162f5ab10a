from __future__ import annotations

import logging
import tempfile
import threading
from pathlib import Path
from typing import Any, Mapping

from .clipboard import ClipboardBackend, copy_file_to_clipboard, default_clipboard
from .config import Settings, load_settings, merge_settings, save_settings
from .encoder import Runner, crop_video, export_clip, generate_thumbnail
from .errors import FileAccessError, InvalidInputError, SlicerError
from .ffmpeg_args import CropRegion, ExportRequest
from .paths import default_save_location, uploads_dir
from .scanner import MediaEntry, is_video_file, list_recent_videos
from .thumb_cache import ThumbnailCache
from .watcher import DirectoryWatcher, Emitter, ObserverFactory

logger = logging.getLogger(__name__)


class SlicerCore:
    """Operations the UI calls: listing, thumbnails, export, settings.

    Thumbnail generation for a listing runs one thread per candidate and the
    listing waits for all of them. An identity already being generated is not
    started a second time.
    """

    def __init__(
        self,
        *,
        settings_file: Path | None = None,
        cache: ThumbnailCache | None = None,
        runner: Runner | None = None,
        clipboard: ClipboardBackend | None = None,
        emit: Emitter | None = None,
        observer_factory: ObserverFactory | None = None,
        staging_dir: Path | None = None,
    ) -> None:
        self.cache = cache or ThumbnailCache()
        self._settings_file = settings_file
        self._runner = runner
        self._clipboard = clipboard
        self._owns_clipboard = clipboard is None
        self._clipboard_lock = threading.Lock()
        self._staging_dir = staging_dir
        self._settings_lock = threading.Lock()
        self._inflight: set[str] = set()
        self._inflight_lock = threading.Lock()
        self._emit = emit or _log_event
        self.watcher = DirectoryWatcher(self._emit, observer_factory)

    # listing and thumbnails

    def list_recent_videos(self, directory: str | Path) -> list[MediaEntry]:
        entries = list_recent_videos(directory)
        workers: list[threading.Thread] = []
        for entry in entries:
            if not self._claim(entry.identity):
                continue
            worker = threading.Thread(
                target=self._thumbnail_worker,
                args=(entry,),
                name=f"vidslicer-thumb:{entry.name}",
                daemon=True,
            )
            worker.start()
            workers.append(worker)
        for worker in workers:
            worker.join()
        return entries

    def refresh_thumbnail(self, entry: MediaEntry) -> bool:
        """Regenerate one thumbnail; ``False`` when it is already in flight."""
        if not self._claim(entry.identity):
            return False
        self._thumbnail_worker(entry)
        return entry.identity in self.cache

    def get_thumbnail(self, identity: str) -> bytes:
        return self.cache.require(identity)

    def _thumbnail_worker(self, entry: MediaEntry) -> None:
        try:
            data = generate_thumbnail(entry.path, self._runner)
        except SlicerError as exc:
            logger.warning("Thumbnail failed for %s: %s", entry.path, exc)
        else:
            self.cache.put(entry.identity, data)
            self._publish("thumbnail-ready", entry.identity)
        finally:
            with self._inflight_lock:
                self._inflight.discard(entry.identity)

    def _publish(self, name: str, *payload: str) -> None:
        try:
            self._emit(name, *payload)
        except Exception:
            logger.exception("Failed to publish %s", name)

    def _claim(self, identity: str) -> bool:
        with self._inflight_lock:
            if identity in self._inflight:
                return False
            self._inflight.add(identity)
            return True

    # export

    def export_clip(
        self,
        source: str | Path,
        title: str,
        start: float,
        end: float,
        extension: str | None = None,
        codec: str | None = None,
        resolution: str | None = None,
        bitrate: str | None = None,
    ) -> Path:
        settings = self._export_settings()
        request = self._build_request(
            settings, source, title, start, end, extension, codec, resolution, bitrate
        )
        output_path = export_clip(request, self._save_location(settings), self._runner)
        self._maybe_copy(settings, output_path)
        return output_path

    def crop_video(
        self,
        source: str | Path,
        start: float,
        end: float,
        width: int,
        height: int,
        x: int = 0,
        y: int = 0,
        title: str = "",
    ) -> Path:
        settings = self._export_settings()
        request = self._build_request(settings, source, title, start, end, None, None, None, None)
        region = CropRegion(width=width, height=height, x=x, y=y)
        output_path = crop_video(request, region, self._save_location(settings), self._runner)
        self._maybe_copy(settings, output_path)
        return output_path

    def copy_to_clipboard(self, path: str | Path) -> Path:
        return copy_file_to_clipboard(path, self._clipboard_backend())

    def _clipboard_backend(self) -> ClipboardBackend:
        with self._clipboard_lock:
            if self._clipboard is None:
                self._clipboard = default_clipboard()
            return self._clipboard

    def _build_request(
        self,
        settings: Settings,
        source: str | Path,
        title: str,
        start: float,
        end: float,
        extension: str | None,
        codec: str | None,
        resolution: str | None,
        bitrate: str | None,
    ) -> ExportRequest:
        if not str(source).strip():
            raise InvalidInputError("video path is empty")
        source_path = Path(source).expanduser()
        if not source_path.is_file():
            raise FileAccessError(f"video not found: {source_path}")
        return ExportRequest(
            source=source_path,
            start=float(start),
            end=float(end),
            title=title or "",
            extension=extension or settings.extension,
            codec=codec or settings.codec,
            resolution=resolution or settings.resolution,
            bitrate=bitrate if bitrate is not None else settings.bitrate,
        )

    def _export_settings(self) -> Settings:
        with self._settings_lock:
            settings, error = load_settings(self._settings_file)
        if error:
            logger.warning("%s; exporting with default settings", error)
            return Settings()
        return settings

    def _save_location(self, settings: Settings) -> Path:
        if settings.save_location:
            return Path(settings.save_location).expanduser()
        return default_save_location()

    def _maybe_copy(self, settings: Settings, output_path: Path) -> None:
        if not settings.copy_to_clipboard:
            return
        try:
            self.copy_to_clipboard(output_path)
        except SlicerError as exc:
            logger.warning("Exported %s but could not copy it to the clipboard: %s", output_path, exc)

    # files

    def select_video(self, path: str | Path) -> Path:
        if not str(path).strip():
            raise InvalidInputError("video path is empty")
        target = Path(path).expanduser()
        if not target.is_file():
            raise FileAccessError(f"selected file is not accessible: {target}")
        if not is_video_file(target.name):
            raise InvalidInputError(f"not a supported video file: {target.name}")
        return target

    def handle_file_upload(self, data: bytes, filename: str) -> Path:
        name = Path(filename.replace("\\", "/")).name
        if not name or name in {".", ".."}:
            raise InvalidInputError("upload file name is empty")
        root = self._staging_dir or uploads_dir()
        try:
            root.mkdir(parents=True, exist_ok=True)
            target = Path(tempfile.mkdtemp(prefix="upload-", dir=root)) / name
            target.write_bytes(data)
        except OSError as exc:
            raise FileAccessError(f"error staging upload {name} ({exc})") from exc
        logger.debug("Staged upload at %s", target)
        return target

    # settings

    def get_settings(self) -> Settings:
        with self._settings_lock:
            settings, error = load_settings(self._settings_file)
        if error:
            raise FileAccessError(error)
        return settings

    def update_settings(self, data: Mapping[str, Any]) -> Settings:
        with self._settings_lock:
            settings, error = load_settings(self._settings_file)
            if error:
                logger.warning("%s; starting from defaults", error)
            settings = merge_settings(settings, data)
            error = save_settings(settings, self._settings_file)
        if error:
            raise FileAccessError(error)
        return settings

    def get_watch_location(self) -> str:
        return self.get_settings().watch_location

    def save_watch_location(self, location: str) -> None:
        location = location.strip()
        if location:
            self.watcher.watch(location)
        else:
            self.watcher.close()
        self.update_settings({"watch_location": location})

    def get_save_location(self) -> str:
        return self.get_settings().save_location

    def save_save_location(self, location: str) -> None:
        self.update_settings({"save_location": location})

    def get_export_settings(self) -> Settings:
        return self.get_settings()

    def save_export_settings(self, data: Mapping[str, Any]) -> Settings:
        return self.update_settings(data)

    def resume_watching(self) -> bool:
        location = self.get_watch_location()
        if not location:
            return False
        try:
            self.watcher.watch(location)
        except SlicerError as exc:
            logger.warning("Cannot resume watching %s: %s", location, exc)
            return False
        return True

    def close(self) -> None:
        self.watcher.close()
        if not self._owns_clipboard:
            return
        with self._clipboard_lock:
            clipboard, self._clipboard = self._clipboard, None
        if clipboard is not None:
            clipboard.close()


def _log_event(name: str, *payload: str) -> None:
    logger.info("Event: %s", " ".join((name, *payload)))
