"""Helpers for absolute drive paths of the form ``/drive/root:/Folder/File``."""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import quote, unquote

__all__ = [
    "DRIVE_ROOT_PREFIX",
    "PathResolutionError",
    "display_name",
    "folder_path",
    "item_endpoint_for_path",
    "normalize_drive_path",
    "resolve_relative_path",
    "split_segments",
]


DRIVE_ROOT_PREFIX = "/drive/root:"

# Business drives report parents as /drives/<drive-id>/root:/...
_DRIVE_ID_ROOT = re.compile(r"^/drives/[^/]+/root:")

# Characters encodeURIComponent leaves untouched besides alphanumerics and "-_.".
_SEGMENT_SAFE_CHARS = "!~*'()"


class PathResolutionError(ValueError):
    """Raised when a path cannot be resolved inside the drive hierarchy."""


def split_segments(path: str) -> List[str]:
    """Return the non-empty ``/``-separated segments of *path*."""

    return [segment for segment in path.split("/") if segment]


def _strip_prefix(path: str) -> str:
    if not path.startswith(DRIVE_ROOT_PREFIX):
        raise PathResolutionError(
            f"Path {path!r} is not rooted at {DRIVE_ROOT_PREFIX!r}"
        )
    return path[len(DRIVE_ROOT_PREFIX) :]


def _join(segments: List[str]) -> str:
    if not segments:
        return DRIVE_ROOT_PREFIX
    return f"{DRIVE_ROOT_PREFIX}/" + "/".join(segments)


def resolve_relative_path(base: str, relative: str) -> str:
    """Resolve *relative* against the absolute folder path *base*.

    ``..`` removes the last segment and fails once nothing is left to remove,
    ``.`` is ignored and every other segment is appended.
    """

    segments = split_segments(_strip_prefix(base))
    for segment in split_segments(relative):
        if segment == "..":
            if not segments:
                raise PathResolutionError(
                    f"{relative!r} ascends above the drive root from {base!r}"
                )
            segments.pop()
        elif segment == ".":
            continue
        else:
            segments.append(segment)
    return _join(segments)


def folder_path(parent_path: str, name: str) -> str:
    """Return the absolute path of the item *name* stored under *parent_path*."""

    segments = split_segments(_strip_prefix(parent_path))
    segments.append(name)
    return _join(segments)


def normalize_drive_path(path: Optional[str]) -> str:
    """Return a Graph parent *path* decoded and rooted at :data:`DRIVE_ROOT_PREFIX`.

    Graph reports ``parentReference.path`` percent-encoded; entries built on
    top of it are kept decoded and encoded again only when a request is made.
    """

    if not path:
        return DRIVE_ROOT_PREFIX
    return _DRIVE_ID_ROOT.sub(DRIVE_ROOT_PREFIX, unquote(path), count=1)


def item_endpoint_for_path(path: str) -> str:
    """Translate an absolute drive path into the Graph item-by-path endpoint."""

    segments = split_segments(_strip_prefix(path))
    if not segments:
        raise PathResolutionError("The drive root is not a playable item")
    encoded = "/".join(quote(segment, safe=_SEGMENT_SAFE_CHARS) for segment in segments)
    return f"/me/drive/root:/{encoded}"


def display_name(path: str) -> str:
    """Return the last segment of *path*."""

    segments = split_segments(path)
    if not segments or path.rstrip("/") == DRIVE_ROOT_PREFIX:
        return ""
    return segments[-1]
