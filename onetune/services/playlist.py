"""M3U playlist loading.

Only the flat form is understood: one relative path per line, ``#`` lines are
comments or ``#EXTINF`` metadata and are skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple, Union

from .drive_paths import PathResolutionError, display_name, folder_path, resolve_relative_path
from .models import DriveItem, is_playlist_name

LOGGER = logging.getLogger(__name__)

__all__ = [
    "Playlist",
    "PlaylistEntry",
    "SkippedLine",
    "build_playlist",
    "is_playlist_name",
    "iter_playlist_lines",
    "load_playlist",
]


@dataclass(frozen=True)
class PlaylistEntry:
    """An absolute drive path produced from one playlist line."""

    path: str
    source: str = ""
    line_number: int = 0

    @property
    def name(self) -> str:
        return display_name(self.path)


@dataclass(frozen=True)
class SkippedLine:
    line_number: int
    text: str
    reason: str


@dataclass
class Playlist:
    """A playlist opened from the drive, ready to hand to the player."""

    item_id: str
    name: str
    parent_path: str
    entries: List[PlaylistEntry] = field(default_factory=list)
    skipped: List[SkippedLine] = field(default_factory=list)

    @property
    def path(self) -> str:
        return folder_path(self.parent_path, self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "parent_path": self.parent_path,
            "path": self.path,
            "track_count": len(self.entries),
            "tracks": [entry.name for entry in self.entries],
            "skipped": [
                {"line": line.line_number, "text": line.text, "reason": line.reason}
                for line in self.skipped
            ],
        }


def _decode(content: Union[str, bytes]) -> str:
    if isinstance(content, bytes):
        return content.decode("utf-8-sig", errors="replace")
    return content.lstrip("\ufeff")


def iter_playlist_lines(content: Union[str, bytes]) -> List[Tuple[int, str]]:
    """Return ``(line_number, text)`` for every line that names a track."""

    lines: List[Tuple[int, str]] = []
    for number, raw in enumerate(_decode(content).splitlines(), start=1):
        text = raw.strip()
        if not text or text.startswith("#"):
            continue
        lines.append((number, text.replace("\\", "/")))
    return lines


def _resolve_lines(
    content: Union[str, bytes], parent_path: str
) -> Tuple[List[PlaylistEntry], List[SkippedLine]]:
    entries: List[PlaylistEntry] = []
    skipped: List[SkippedLine] = []
    for number, text in iter_playlist_lines(content):
        try:
            resolved = resolve_relative_path(parent_path, text)
        except PathResolutionError as error:
            LOGGER.warning("Dropping playlist line %s (%r): %s", number, text, error)
            skipped.append(SkippedLine(line_number=number, text=text, reason=str(error)))
            continue
        entries.append(PlaylistEntry(path=resolved, source=text, line_number=number))
    return entries, skipped


def load_playlist(content: Union[str, bytes], parent_path: str) -> List[PlaylistEntry]:
    """Resolve the track lines of *content* against the folder *parent_path*.

    Lines that cannot be resolved are logged and dropped so the rest of the
    playlist still plays.
    """

    entries, _skipped = _resolve_lines(content, parent_path)
    return entries


def build_playlist(item: DriveItem, content: Union[str, bytes], parent_path: str) -> Playlist:
    """Return a :class:`Playlist` for *item* including the lines that were dropped."""

    entries, skipped = _resolve_lines(content, parent_path)
    LOGGER.info(
        "Loaded playlist %s with %s track(s), %s line(s) dropped",
        item.name,
        len(entries),
        len(skipped),
    )
    return Playlist(
        item_id=item.id,
        name=item.name,
        parent_path=parent_path,
        entries=entries,
        skipped=skipped,
    )
