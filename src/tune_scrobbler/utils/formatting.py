"""Formatting utilities for CLI output."""

from __future__ import annotations

from datetime import datetime, timezone


def format_duration(seconds: int) -> str:
    if seconds < 0:
        seconds = 0

    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def truncate(text: str, max_len: int) -> str:
    if max_len < 1:
        return ""
    if len(text) <= max_len:
        return text
    if max_len <= 3:
        return text[:max_len]
    return text[: max_len - 3] + "..."


def format_playcount(playcount: int, per_day: float) -> str:
    """Summary line for a user's scrobble statistics."""
    return f"Scrobbled {playcount:,} songs, {per_day} per day"


def format_timestamp(unixtime: int | None) -> str:
    if unixtime is None:
        return "-"
    return datetime.fromtimestamp(unixtime, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_track(track: dict, max_len: int = 80) -> str:
    """One-line ``Artist - Title [Album] (m:ss)`` description of a status track dict."""
    text = f"{track.get('artist') or 'Unknown'} - {track.get('title') or 'Unknown'}"
    if track.get("album"):
        text += f" [{track['album']}]"
    duration = int(track.get("duration") or 0)
    if duration:
        text += f" ({format_duration(duration)})"
    return truncate(text, max_len)
