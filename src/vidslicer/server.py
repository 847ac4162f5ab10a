from __future__ import annotations

import logging
import mimetypes
import os
import re
import threading
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, Response, StreamingResponse

from .thumb_cache import ThumbnailCache

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 34115
PORT_ENV = "VIDSLICER_PORT"

CHUNK = 1024 * 1024
_range_re = re.compile(r"bytes=(\d*)-(\d*)$")


def default_port() -> int:
    value = os.environ.get(PORT_ENV, "").strip()
    if value.isdigit():
        return int(value)
    return DEFAULT_PORT


def parse_range_header(range_header: str, file_size: int) -> tuple[tuple[int, int] | None, str | None]:
    """Parse a single ``bytes=`` range.

    Returns ``((start, end), None)`` on success, otherwise ``(None, reason)``
    with reason ``MULTI``, ``BAD`` or ``OUT``.
    """
    if not range_header:
        return None, None
    if "," in range_header:
        return None, "MULTI"
    match = _range_re.match(range_header.strip())
    if not match:
        return None, "BAD"
    start_s, end_s = match.groups()
    if start_s == "" and end_s == "":
        return None, "BAD"
    if start_s == "":
        length = int(end_s)
        if length <= 0:
            return None, "BAD"
        start = max(0, file_size - length)
        end = file_size - 1
    else:
        start = int(start_s)
        end = int(end_s) if end_s else file_size - 1
    if start >= file_size:
        return None, "OUT"
    end = min(end, file_size - 1)
    if start > end:
        return None, "BAD"
    return (start, end), None


def create_app(cache: ThumbnailCache) -> FastAPI:
    app = FastAPI(title="vidslicer")

    @app.get("/thumbnails/{identity}")
    def thumbnail(identity: str) -> Response:
        data = cache.get(identity)
        if data is None:
            raise HTTPException(status_code=404, detail="thumbnail not found")
        return Response(content=data, media_type="image/jpeg")

    @app.get("/video/{file_path:path}")
    def video(file_path: str, request: Request) -> Response:
        if not file_path or "\x00" in file_path:
            raise HTTPException(status_code=400, detail="Invalid file path")
        path = Path(file_path)
        try:
            file_size = path.stat().st_size
        except OSError:
            raise HTTPException(status_code=404, detail="File not found") from None
        if not path.is_file():
            raise HTTPException(status_code=404, detail="File not found")
        mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

        range_header = request.headers.get("range")
        rng, err = parse_range_header(range_header, file_size) if range_header else (None, None)
        if rng is None:
            if err is not None:
                return Response(
                    status_code=416,
                    headers={"Content-Range": f"bytes */{file_size}", "Accept-Ranges": "bytes"},
                )
            return FileResponse(path, media_type=mime, headers={"Accept-Ranges": "bytes"})

        start, end = rng
        length = end - start + 1

        def iterfile():
            with open(path, "rb") as handle:
                handle.seek(start)
                remaining = length
                while remaining > 0:
                    data = handle.read(min(CHUNK, remaining))
                    if not data:
                        break
                    remaining -= len(data)
                    yield data

        headers = {
            "Content-Range": f"bytes {start}-{end}/{file_size}",
            "Accept-Ranges": "bytes",
            "Content-Length": str(length),
        }
        return StreamingResponse(iterfile(), status_code=206, headers=headers, media_type=mime)

    return app


class ServerThread(threading.Thread):
    """Runs the loopback HTTP endpoints in the background."""

    def __init__(self, app: FastAPI, host: str = DEFAULT_HOST, port: int | None = None) -> None:
        super().__init__(name="vidslicer-http", daemon=True)
        self.host = host
        self.port = port if port is not None else default_port()
        config = uvicorn.Config(app, host=self.host, port=self.port, log_level="warning")
        self._server = uvicorn.Server(config)

    def run(self) -> None:
        logger.info("Serving thumbnails and video on http://%s:%d", self.host, self.port)
        self._server.run()

    def stop(self, timeout: float = 5.0) -> None:
        self._server.should_exit = True
        if self.is_alive():
            self.join(timeout=timeout)
