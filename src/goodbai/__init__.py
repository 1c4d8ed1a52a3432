"""goodbai - flag AI-generated tracks in Spotify playlists."""

__version__ = "0.1.0"
