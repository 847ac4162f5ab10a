from __future__ import annotations

import functools
import logging
import os
import struct
import sys
import threading
from pathlib import Path
from typing import Protocol, Sequence

from .errors import FileAccessError, InvalidInputError

logger = logging.getLogger(__name__)

CF_HDROP = 15
GMEM_MOVEABLE = 0x0002
# DROPFILES: DWORD pFiles, POINT pt (two LONGs), BOOL fNC, BOOL fWide
DROPFILES_FORMAT = "<IiiiI"
DROPFILES_SIZE = struct.calcsize(DROPFILES_FORMAT)


class ClipboardBackend(Protocol):
    def copy_file(self, path: Path) -> None: ...

    def close(self) -> None: ...


def build_dropfiles_payload(paths: Sequence[str | Path]) -> bytes:
    """Lay out a ``CF_HDROP`` block for ``paths``.

    The block is a ``DROPFILES`` header whose ``pFiles`` offset points just
    past itself, with ``fWide`` set, followed by the UTF-16-LE paths. Each
    path ends with a null character and the list ends with one more.
    """
    if not paths:
        raise InvalidInputError("no paths to place on the clipboard")
    header = struct.pack(DROPFILES_FORMAT, DROPFILES_SIZE, 0, 0, 0, 1)
    names = "".join(f"{os.fspath(path)}\0" for path in paths) + "\0"
    return header + names.encode("utf-16-le")


class TextClipboard:
    """Places the path as plain text through the Tk clipboard.

    On X11 the clipboard content is served by the window that owns the
    selection, so one hidden root is kept for the life of the backend and
    only destroyed by ``close``. After that (or after the process exits) the
    text survives only if a clipboard manager has taken a copy. Tk objects
    belong to the thread that created them; use the backend from one thread.
    """

    def __init__(self) -> None:
        self._root = None
        self._lock = threading.Lock()

    def copy_file(self, path: Path) -> None:
        try:
            import tkinter
        except ImportError as exc:
            raise FileAccessError("tkinter is not available for clipboard access") from exc
        with self._lock:
            try:
                if self._root is None:
                    root = tkinter.Tk()
                    root.withdraw()
                    self._root = root
                self._root.clipboard_clear()
                self._root.clipboard_append(str(path))
                self._root.update()
            except (tkinter.TclError, RuntimeError) as exc:
                raise FileAccessError(f"clipboard unavailable ({exc})") from exc

    def close(self) -> None:
        with self._lock:
            root, self._root = self._root, None
        if root is None:
            return
        import tkinter

        try:
            root.destroy()
        except tkinter.TclError as exc:
            logger.debug("Clipboard window already gone: %s", exc)


class WindowsFileClipboard:
    """Places the file itself on the clipboard as a ``CF_HDROP`` drop list."""

    def copy_file(self, path: Path) -> None:
        import ctypes
        from ctypes import wintypes

        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
        user32 = ctypes.WinDLL("user32", use_last_error=True)
        kernel32.GlobalAlloc.argtypes = [wintypes.UINT, ctypes.c_size_t]
        kernel32.GlobalAlloc.restype = wintypes.HGLOBAL
        kernel32.GlobalLock.argtypes = [wintypes.HGLOBAL]
        kernel32.GlobalLock.restype = wintypes.LPVOID
        kernel32.GlobalUnlock.argtypes = [wintypes.HGLOBAL]
        kernel32.GlobalFree.argtypes = [wintypes.HGLOBAL]
        kernel32.GlobalFree.restype = wintypes.HGLOBAL
        user32.OpenClipboard.argtypes = [wintypes.HWND]
        user32.SetClipboardData.argtypes = [wintypes.UINT, wintypes.HANDLE]
        user32.SetClipboardData.restype = wintypes.HANDLE

        payload = build_dropfiles_payload([path])
        if not user32.OpenClipboard(None):
            raise FileAccessError(f"failed to open clipboard ({ctypes.get_last_error()})")
        try:
            if not user32.EmptyClipboard():
                raise FileAccessError(f"failed to empty clipboard ({ctypes.get_last_error()})")
            handle = kernel32.GlobalAlloc(GMEM_MOVEABLE, len(payload))
            if not handle:
                raise FileAccessError(f"failed to allocate clipboard memory ({ctypes.get_last_error()})")
            # SetClipboardData takes ownership of handle on success only;
            # every earlier exit frees it here.
            handed_off = False
            try:
                pointer = kernel32.GlobalLock(handle)
                if not pointer:
                    raise FileAccessError(f"failed to lock clipboard memory ({ctypes.get_last_error()})")
                try:
                    ctypes.memmove(pointer, payload, len(payload))
                finally:
                    kernel32.GlobalUnlock(handle)
                if not user32.SetClipboardData(CF_HDROP, handle):
                    raise FileAccessError(f"failed to set clipboard data ({ctypes.get_last_error()})")
                handed_off = True
            finally:
                if not handed_off:
                    kernel32.GlobalFree(handle)
        finally:
            user32.CloseClipboard()

    def close(self) -> None:
        return None


def default_clipboard() -> ClipboardBackend:
    if sys.platform == "win32":
        return WindowsFileClipboard()
    return TextClipboard()


@functools.lru_cache(maxsize=1)
def shared_clipboard() -> ClipboardBackend:
    """Process-wide backend for callers that do not keep their own."""
    return default_clipboard()


def copy_file_to_clipboard(path: str | Path, backend: ClipboardBackend | None = None) -> Path:
    if not str(path).strip():
        raise InvalidInputError("file path is empty")
    target = Path(path).expanduser()
    if not target.exists():
        raise FileAccessError(f"file does not exist: {target}")
    target = target.resolve()
    (backend or shared_clipboard()).copy_file(target)
    logger.debug("Copied %s to clipboard", target)
    return target
