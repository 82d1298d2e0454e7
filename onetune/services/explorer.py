"""Folder navigation and playlist opening on top of :class:`GraphClient`."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from .drive_paths import normalize_drive_path
from .models import DriveItem
from .playlist import Playlist, build_playlist

LOGGER = logging.getLogger(__name__)


class DriveSource(Protocol):
    async def list_children(self, item_id: Optional[str] = None) -> List[DriveItem]: ...

    async def get_item(self, item_id: str) -> DriveItem: ...

    async def get_content(self, item_id: str) -> bytes: ...


class StaleResultError(RuntimeError):
    """Raised when a result arrives after a newer request replaced it."""


class NotAPlaylistError(ValueError):
    """Raised when the item asked to open is not an M3U file."""


@dataclass
class ExplorerView:
    folder_id: Optional[str]
    generation: int
    items: List[DriveItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "folder_id": self.folder_id,
            "generation": self.generation,
            "items": [item.to_dict() for item in self.items],
        }


def is_visible(item: DriveItem) -> bool:
    """Only folders and playlists are shown in the explorer."""

    return item.is_folder or item.is_playlist


class DriveExplorer:
    """Tracks the folder being browsed and drops listings that arrive too late."""

    def __init__(self, source: DriveSource) -> None:
        self._source = source
        self._generation = 0
        self._open_generation = 0
        self._view: Optional[ExplorerView] = None

    @property
    def view(self) -> Optional[ExplorerView]:
        return self._view

    @property
    def generation(self) -> int:
        return self._generation

    def reset(self) -> None:
        self._generation += 1
        self._open_generation += 1
        self._view = None

    async def navigate(self, item_id: Optional[str] = None) -> ExplorerView:
        self._generation += 1
        generation = self._generation
        children = await self._source.list_children(item_id)
        if generation != self._generation:
            LOGGER.debug(
                "Discarding listing for %s (generation %s, current %s)",
                item_id or "root",
                generation,
                self._generation,
            )
            raise StaleResultError("Navigation superseded by a newer request")

        view = ExplorerView(
            folder_id=item_id,
            generation=generation,
            items=[child for child in children if is_visible(child)],
        )
        LOGGER.info(
            "Listed %s: %s visible of %s item(s)",
            item_id or "drive root",
            len(view.items),
            len(children),
        )
        self._view = view
        return view

    def _ensure_latest_open(self, generation: int, item_id: str) -> None:
        if generation != self._open_generation:
            LOGGER.debug(
                "Discarding playlist %s (generation %s, current %s)",
                item_id,
                generation,
                self._open_generation,
            )
            raise StaleResultError("Playlist open superseded by a newer request")

    async def open_playlist(self, item_id: str) -> Playlist:
        self._open_generation += 1
        generation = self._open_generation
        item = await self._source.get_item(item_id)
        self._ensure_latest_open(generation, item_id)
        if not item.is_playlist:
            raise NotAPlaylistError(f"{item.name or item_id} is not an .m3u playlist")
        parent_path = normalize_drive_path(item.parent_path)
        content = await self._source.get_content(item_id)
        self._ensure_latest_open(generation, item_id)
        return build_playlist(item, content, parent_path)


__all__ = [
    "DriveExplorer",
    "DriveSource",
    "ExplorerView",
    "NotAPlaylistError",
    "StaleResultError",
    "is_visible",
]
