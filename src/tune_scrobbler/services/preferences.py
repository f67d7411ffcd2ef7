"""Persisted key/value preferences the engine reads and writes at runtime."""

from __future__ import annotations

import logging
from pathlib import Path

from tune_scrobbler.config.paths import CONFIG_FILE
from tune_scrobbler.config.settings import Settings

logger = logging.getLogger(__name__)


class Preferences:
    """Scrobbling flag, session credentials and first-run flag.

    Backed by the TOML :class:`Settings`; every setter writes the file
    straight away.
    """

    def __init__(self, settings: Settings | None = None, path: Path = CONFIG_FILE) -> None:
        self._path = path
        self._settings = settings if settings is not None else Settings.load(path)

    @property
    def settings(self) -> Settings:
        return self._settings

    def _save(self) -> None:
        self._settings.save(self._path)

    def reload(self) -> None:
        """Re-read the file, picking up changes made by another process."""
        loaded = Settings.load(self._path)
        self._settings.general = loaded.general
        self._settings.lastfm = loaded.lastfm
        self._settings.player = loaded.player

    # -- scrobbling ----------------------------------------------------

    @property
    def scrobbling_enabled(self) -> bool:
        return self._settings.lastfm.scrobbling_enabled

    def set_scrobbling_enabled(self, enabled: bool) -> None:
        logger.info("Scrobbling %s", "enabled" if enabled else "disabled")
        self._settings.lastfm.scrobbling_enabled = enabled
        self._save()

    # -- session -------------------------------------------------------

    @property
    def session_key(self) -> str | None:
        return self._settings.lastfm.session_key or None

    @property
    def username(self) -> str | None:
        return self._settings.lastfm.username or None

    def set_session(self, session_key: str, username: str) -> None:
        self._settings.lastfm.session_key = session_key
        self._settings.lastfm.username = username
        self._save()

    def clear_session(self) -> None:
        self._settings.lastfm.session_key = ""
        self._settings.lastfm.username = ""
        self._settings.lastfm.scrobbling_enabled = False
        self._save()

    # -- first run -----------------------------------------------------

    @property
    def first_run_complete(self) -> bool:
        return self._settings.general.first_run_complete

    def set_first_run_complete(self, complete: bool = True) -> None:
        self._settings.general.first_run_complete = complete
        self._save()
