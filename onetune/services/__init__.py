"""Drive access, playlist resolution and playback sequencing."""
