"""OneTune: play M3U playlists stored in OneDrive."""

__version__ = "0.1.0"
