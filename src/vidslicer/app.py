from __future__ import annotations

import argparse
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import settings_to_dict
from .core import SlicerCore
from .errors import SlicerError
from .paths import settings_path
from .server import DEFAULT_HOST, ServerThread, create_app, default_port

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)


def _cli_help_text() -> str:
    return "\n".join(
        [
            "vidslicer: browse recent videos, export and crop clips with ffmpeg",
            "",
            "Commands:",
            "  list DIR                 show the three most recent videos in DIR",
            "  export SRC --start --end transcode a clip into the save location",
            "  crop SRC --start --end --width --height",
            "                           crop a region of the frame over a time range",
            "  serve [--watch DIR]      serve thumbnails and video on the loopback port",
            "  settings                 show or update saved settings",
            "",
            f"Settings file: {settings_path()}",
        ]
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vidslicer",
        description=_cli_help_text(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command")

    list_cmd = commands.add_parser("list", help="List recent videos")
    list_cmd.add_argument("directory", help="Directory to scan")

    export_cmd = commands.add_parser("export", help="Export a clip")
    _add_clip_arguments(export_cmd)
    export_cmd.add_argument("--extension", help="Container, e.g. mp4, mkv or gif")
    export_cmd.add_argument("--codec", help="libx264, libx265, h264_nvenc or hevc_nvenc; append :muted to drop audio")
    export_cmd.add_argument("--resolution", help="source, 1080p, 720p or 480p")
    export_cmd.add_argument("--bitrate", help="Video bitrate in kbit/s")

    crop_cmd = commands.add_parser("crop", help="Crop a frame region over a time range")
    _add_clip_arguments(crop_cmd)
    crop_cmd.add_argument("--width", type=int, required=True)
    crop_cmd.add_argument("--height", type=int, required=True)
    crop_cmd.add_argument("--x", type=int, default=0)
    crop_cmd.add_argument("--y", type=int, default=0)

    serve_cmd = commands.add_parser("serve", help="Run the thumbnail and video endpoints")
    serve_cmd.add_argument("--watch", help="Directory to watch for changes")
    serve_cmd.add_argument("--port", type=int, help="Loopback port")

    settings_cmd = commands.add_parser("settings", help="Show or update settings")
    settings_cmd.add_argument("--save-location")
    settings_cmd.add_argument("--watch-location")
    settings_cmd.add_argument("--extension")
    settings_cmd.add_argument("--resolution")
    settings_cmd.add_argument("--codec")
    settings_cmd.add_argument("--bitrate")
    settings_cmd.add_argument(
        "--copy-to-clipboard",
        action=argparse.BooleanOptionalAction,
        default=None,
    )
    return parser


def _add_clip_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("source", help="Source video file")
    parser.add_argument("--start", type=float, required=True, help="Start time in seconds")
    parser.add_argument("--end", type=float, required=True, help="End time in seconds")
    parser.add_argument("--title", default="", help="Output name without extension")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
    )


def _run_list(core: SlicerCore, args: argparse.Namespace) -> None:
    entries = core.list_recent_videos(args.directory)
    table = Table(title=f"Recent videos in {args.directory}")
    table.add_column("Name")
    table.add_column("Identity")
    table.add_column("Thumbnail")
    for entry in entries:
        table.add_row(entry.name, entry.identity, "yes" if entry.identity in core.cache else "no")
    console.print(table)


def _run_export(core: SlicerCore, args: argparse.Namespace) -> None:
    path = core.export_clip(
        args.source,
        args.title,
        args.start,
        args.end,
        extension=args.extension,
        codec=args.codec,
        resolution=args.resolution,
        bitrate=args.bitrate,
    )
    console.print(f"Exported [bold]{escape(str(path))}[/bold]")


def _run_crop(core: SlicerCore, args: argparse.Namespace) -> None:
    path = core.crop_video(
        args.source,
        args.start,
        args.end,
        args.width,
        args.height,
        x=args.x,
        y=args.y,
        title=args.title,
    )
    console.print(f"Cropped [bold]{escape(str(path))}[/bold]")


def _run_settings(core: SlicerCore, args: argparse.Namespace) -> None:
    updates = {
        key: value
        for key, value in {
            "save_location": args.save_location,
            "watch_location": args.watch_location,
            "extension": args.extension,
            "resolution": args.resolution,
            "codec": args.codec,
            "bitrate": args.bitrate,
            "copy_to_clipboard": args.copy_to_clipboard,
        }.items()
        if value is not None
    }
    settings = core.update_settings(updates) if updates else core.get_settings()
    table = Table(title=str(settings_path()))
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in settings_to_dict(settings).items():
        table.add_row(key, str(value))
    console.print(table)


def _run_serve(core: SlicerCore, args: argparse.Namespace) -> None:
    port = args.port if args.port is not None else default_port()
    server = ServerThread(create_app(core.cache), host=DEFAULT_HOST, port=port)
    server.start()
    if args.watch:
        core.save_watch_location(args.watch)
    else:
        core.resume_watching()
    try:
        while server.is_alive():
            server.join(timeout=1.0)
        logger.error("HTTP server stopped")
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        core.close()
        server.stop()


_COMMANDS = {
    "list": _run_list,
    "export": _run_export,
    "crop": _run_crop,
    "settings": _run_settings,
    "serve": _run_serve,
}


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if argv and argv[0] in {"-help", "/?"}:
        console.print(_cli_help_text(), markup=False)
        return 0
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0
    _configure_logging(args.verbose)
    core = SlicerCore()
    try:
        _COMMANDS[args.command](core, args)
    except SlicerError as exc:
        err_console.print(f"[red]error:[/red] {escape(str(exc))}")
        return 1
    finally:
        core.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
