"""Data records exchanged with Microsoft Graph."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

PLAYLIST_EXTENSIONS = (".m3u",)


def is_playlist_name(name: str) -> bool:
    """Return ``True`` when *name* looks like an M3U playlist."""

    return name.lower().endswith(PLAYLIST_EXTENSIONS)


@dataclass(frozen=True)
class DriveItem:
    """A file or folder listed in the user's drive."""

    id: str
    name: str
    is_folder: bool = False
    is_file: bool = False
    size: Optional[int] = None
    parent_id: Optional[str] = None
    parent_path: Optional[str] = None

    @property
    def is_playlist(self) -> bool:
        return self.is_file and is_playlist_name(self.name)

    @classmethod
    def from_graph(cls, payload: Mapping[str, Any]) -> "DriveItem":
        parent: Mapping[str, Any] = payload.get("parentReference") or {}
        size = payload.get("size")
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            is_folder="folder" in payload,
            is_file="file" in payload,
            size=int(size) if isinstance(size, (int, float)) else None,
            parent_id=parent.get("id"),
            parent_path=parent.get("path"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "is_folder": self.is_folder,
            "is_file": self.is_file,
            "is_playlist": self.is_playlist,
            "size": self.size,
            "parent_id": self.parent_id,
        }


__all__ = ["DriveItem", "PLAYLIST_EXTENSIONS", "is_playlist_name"]
