"""A Rich-powered console report of how a playlist resolves against the drive."""

from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..services.playlist import Playlist


class PlaylistReport:
    """Render the tracks and skipped lines of a loaded playlist."""

    def __init__(self, playlist: Playlist, *, console: Optional[Console] = None) -> None:
        self._playlist = playlist
        self._console = console or Console()

    def run(self) -> None:
        playlist = self._playlist
        console = self._console

        console.rule(f"[bold magenta]{playlist.name}")
        console.print(Text(f"Resolved against {playlist.parent_path}", style="dim"))

        if not playlist.entries:
            console.print(
                Panel(
                    "The playlist has no playable lines.",
                    title="Empty playlist",
                    border_style="yellow",
                )
            )
        else:
            console.print(self._build_track_table())

        if playlist.skipped:
            console.print(self._build_skipped_table())

        console.print(
            Text(
                f"{len(playlist.entries)} track(s), {len(playlist.skipped)} skipped line(s)",
                style="bold",
            )
        )

    def _build_track_table(self) -> Table:
        table = Table(box=box.SIMPLE_HEAVY, title="Tracks", expand=True)
        table.add_column("#", justify="right", style="cyan", no_wrap=True)
        table.add_column("Line", justify="right", style="dim")
        table.add_column("Entry")
        table.add_column("Drive path", style="green")
        for position, entry in enumerate(self._playlist.entries, start=1):
            table.add_row(str(position), str(entry.line_number), entry.source, entry.path)
        return table

    def _build_skipped_table(self) -> Table:
        table = Table(box=box.SIMPLE, title="Skipped lines", title_style="yellow")
        table.add_column("Line", justify="right", style="dim")
        table.add_column("Text")
        table.add_column("Reason", style="red")
        for line in self._playlist.skipped:
            table.add_row(str(line.line_number), line.text, line.reason)
        return table


__all__ = ["PlaylistReport"]
