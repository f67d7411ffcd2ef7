"""Centralized path definitions for tune-scrobbler.

Respects $XDG_CONFIG_HOME and $XDG_RUNTIME_DIR when set.
"""

from __future__ import annotations

import os
from pathlib import Path

_xdg_config = os.environ.get("XDG_CONFIG_HOME")

SECURE_FILE_MODE = 0o600
SECURE_DIR_MODE = 0o700

CONFIG_DIR = (
    (Path(_xdg_config) / "tune-scrobbler")
    if _xdg_config
    else (Path.home() / ".config" / "tune-scrobbler")
)
CONFIG_FILE = CONFIG_DIR / "config.toml"
PID_FILE = CONFIG_DIR / "tune-scrobbler.pid"

# Unix sockets have a ~108 byte path limit. Use XDG_RUNTIME_DIR (short,
# per-user, tmpfs) when available, fall back to CONFIG_DIR.
_xdg_runtime = os.environ.get("XDG_RUNTIME_DIR")
SOCKET_PATH = (
    (Path(_xdg_runtime) / "tune-scrobbler.sock")
    if _xdg_runtime
    else (CONFIG_DIR / "tune-scrobbler.sock")
)

_dirs_ensured = False


def ensure_dirs() -> None:
    """Create the config directory with secure permissions.

    Called lazily rather than at import time so tests never touch the
    user's home directory.
    """
    global _dirs_ensured
    if _dirs_ensured:
        return
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, SECURE_DIR_MODE)
    _dirs_ensured = True
