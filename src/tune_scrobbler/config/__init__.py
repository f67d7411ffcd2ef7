"""Configuration package for tune-scrobbler."""

from tune_scrobbler.config.settings import Settings

__all__ = ["Settings"]
