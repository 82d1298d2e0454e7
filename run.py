"""Entry-point for the OneTune application."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from onetune.bootstrap import initialize_app
from onetune.logging_utils import DEFAULT_LOG_FORMAT, configure_logging, get_log_file_path
from onetune.services.drive_paths import DRIVE_ROOT_PREFIX, normalize_drive_path
from onetune.services.models import DriveItem, is_playlist_name
from onetune.services.playlist import build_playlist
from onetune.ui.playlist_view import PlaylistReport
from onetune.web import create_app


LOGGER = logging.getLogger("onetune")


cli = typer.Typer(add_completion=False, help="OneTune drive playlist player")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# Third-party loggers that are chatty at INFO and DEBUG.
_QUIET_LOGGERS = ("msal", "httpx", "httpcore")


def _prepare_logging(storage_root: Path, *, debug: bool = False) -> None:
    log_file = get_log_file_path(storage_root)
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    configure_logging(
        logging.DEBUG if debug else logging.INFO,
        handlers=[file_handler, stream_handler],
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(
            serve,
            host=DEFAULT_HOST,
            port=DEFAULT_PORT,
            root_path=None,
            open_browser=True,
            debug=False,
        )


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="ONETUNE_ROOT_PATH",
    ),
    open_browser: bool = typer.Option(
        True,
        "--open-browser/--no-browser",
        help="Open the player page in the default browser once the server starts",
    ),
    debug: bool = typer.Option(False, help="Log at DEBUG level"),
) -> None:
    """Run the FastAPI-powered player page."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root, debug=debug)

    normalized_root = _normalize_root_path(root_path)
    app = create_app(app_config, root_path=normalized_root)

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server

    browser_host = host
    if not browser_host or browser_host in {"0.0.0.0", "::"}:
        browser_host = "127.0.0.1"
    url_path = f"{normalized_root}/" if normalized_root else "/"
    url = f"http://{browser_host}:{port}{url_path}"
    LOGGER.info("Serving OneTune at %s", url)

    if open_browser:

        def _open_browser_later() -> None:
            time.sleep(1.0)
            if not webbrowser.open(url, new=2, autoraise=True):
                LOGGER.warning("Could not open a browser; visit %s", url)

        threading.Thread(target=_open_browser_later, daemon=True).start()

    server.run()


@cli.command()
def inspect(
    playlist: Path = typer.Argument(..., exists=True, dir_okay=False, help="Local .m3u file"),
    folder: str = typer.Option(
        DRIVE_ROOT_PREFIX,
        "--folder",
        "-f",
        help="Drive folder the playlist lives in, e.g. /drive/root:/Music/Playlists",
    ),
) -> None:
    """Show the drive paths a playlist resolves to without contacting the drive."""

    if not is_playlist_name(playlist.name):
        raise typer.BadParameter(f"{playlist.name} is not an .m3u playlist", param_hint="PLAYLIST")
    parent_path = normalize_drive_path(folder)
    if not parent_path.startswith(DRIVE_ROOT_PREFIX):
        raise typer.BadParameter(f"Folder must start with {DRIVE_ROOT_PREFIX}", param_hint="--folder")

    item = DriveItem(id=str(playlist), name=playlist.name, is_file=True)
    loaded = build_playlist(item, playlist.read_bytes(), parent_path)
    PlaylistReport(loaded).run()


if __name__ == "__main__":
    cli()
