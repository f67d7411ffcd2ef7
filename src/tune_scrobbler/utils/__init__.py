"""Utility modules."""

from __future__ import annotations

from tune_scrobbler.utils.formatting import (
    format_duration,
    format_playcount,
    format_timestamp,
    format_track,
    truncate,
)

__all__ = [
    "format_duration",
    "format_playcount",
    "format_timestamp",
    "format_track",
    "truncate",
]
