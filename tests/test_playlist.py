from __future__ import annotations

import logging

from onetune.services.drive_paths import normalize_drive_path
from onetune.services.models import DriveItem, is_playlist_name
from onetune.services.playlist import build_playlist, iter_playlist_lines, load_playlist


PLAYLIST_TEXT = """#EXTM3U
#EXTINF:215,Artist - First
../Artist/Album/01 First.mp3

./02 Second.flac
"""


def test_comments_and_blank_lines_are_skipped() -> None:
    entries = load_playlist(PLAYLIST_TEXT, "/drive/root:/Music/Playlists")

    assert [entry.path for entry in entries] == [
        "/drive/root:/Music/Artist/Album/01 First.mp3",
        "/drive/root:/Music/Playlists/02 Second.flac",
    ]
    assert [entry.line_number for entry in entries] == [3, 5]
    assert entries[0].name == "01 First.mp3"


def test_unresolvable_lines_are_dropped_and_logged(caplog) -> None:
    text = "../../../Outside.mp3\nInside.mp3\n"

    with caplog.at_level(logging.WARNING):
        entries = load_playlist(text, "/drive/root:/Music")

    assert [entry.path for entry in entries] == ["/drive/root:/Music/Inside.mp3"]
    assert "Outside.mp3" in caplog.text


def test_bytes_with_bom_and_windows_separators() -> None:
    content = "\ufeff..\\Albums\\Song.mp3\r\n  #comment\r\n".encode("utf-8")

    entries = load_playlist(content, "/drive/root:/Music/Lists")

    assert [entry.path for entry in entries] == ["/drive/root:/Music/Albums/Song.mp3"]


def test_invalid_utf8_is_replaced_rather_than_failing() -> None:
    lines = iter_playlist_lines(b"Caf\xe9.mp3\n")

    assert len(lines) == 1
    assert lines[0][1].startswith("Caf")


def test_build_playlist_reports_skipped_lines() -> None:
    item = DriveItem(id="pl-1", name="Road Trip.m3u", is_file=True)

    playlist = build_playlist(item, "A.mp3\n../../B.mp3\n", "/drive/root:/Lists")

    summary = playlist.to_dict()
    assert summary["track_count"] == 1
    assert summary["tracks"] == ["A.mp3"]
    assert summary["path"] == "/drive/root:/Lists/Road Trip.m3u"
    assert summary["skipped"][0]["line"] == 2
    assert summary["skipped"][0]["text"] == "../../B.mp3"


def test_playlist_extension_is_case_insensitive() -> None:
    assert is_playlist_name("mix.m3u")
    assert is_playlist_name("MIX.M3U")
    assert not is_playlist_name("mix.m3u8")
    assert not is_playlist_name("song.mp3")


def test_parent_paths_from_graph_are_normalised() -> None:
    assert normalize_drive_path(None) == "/drive/root:"
    assert normalize_drive_path("/drive/root:/My%20Music") == "/drive/root:/My Music"
    assert normalize_drive_path("/drives/b!abc123/root:/Music") == "/drive/root:/Music"
