"""tune-scrobbler: report what a media player is playing to Last.fm."""

__version__ = "0.3.0"
