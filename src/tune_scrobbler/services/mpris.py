"""MPRIS D-Bus player adapter.

Follows an MPRIS2 media player on the session bus: reads its playback
status and metadata, forwards transport commands, and emits
``PlayerEvent.STATE_CHANGE`` whenever playback, the track, or the player's
presence on the bus changes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

from tune_scrobbler.exceptions import PlayerError
from tune_scrobbler.models import MediaKind, Track
from tune_scrobbler.services.events import EventEmitter
from tune_scrobbler.services.player import PlayerEvent, PlayerState

logger = logging.getLogger(__name__)

try:
    from dbus_next.aio import MessageBus
    from dbus_next.errors import DBusError

    _DBUS_AVAILABLE = True
except ImportError:
    _DBUS_AVAILABLE = False

MPRIS_PREFIX = "org.mpris.MediaPlayer2."
OBJECT_PATH = "/org/mpris/MediaPlayer2"
PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
DBUS_NAME = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"

_VIDEO_SUFFIXES = frozenset({".mp4", ".m4v", ".mkv", ".webm", ".avi", ".mov", ".wmv"})
_STATUS_MAP = {
    "Playing": PlayerState.PLAYING,
    "Paused": PlayerState.PAUSED,
    "Stopped": PlayerState.STOPPED,
}
# Changes to these properties matter to the scrobble engine.
_WATCHED_PROPERTIES = frozenset({"PlaybackStatus", "Metadata"})


def _unwrap(value: Any) -> Any:
    """Return the payload of a dbus-next Variant (or the value itself)."""
    return getattr(value, "value", value)


def media_kind_for_url(url: str) -> MediaKind:
    if not url:
        return MediaKind.SONG
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    return MediaKind.VIDEO if suffix in _VIDEO_SUFFIXES else MediaKind.SONG


def parse_metadata(metadata: dict[str, Any]) -> Track | None:
    """Build a Track from an MPRIS ``Metadata`` dict, or None when it has no title."""
    title = _unwrap(metadata.get("xesam:title")) or ""
    if not title:
        return None

    artists = _unwrap(metadata.get("xesam:artist")) or []
    if isinstance(artists, str):
        artists = [artists]
    artist = ", ".join(_unwrap(a) for a in artists if _unwrap(a))

    album = _unwrap(metadata.get("xesam:album")) or ""
    length_us = _unwrap(metadata.get("mpris:length")) or 0
    url = _unwrap(metadata.get("xesam:url")) or ""

    return Track(
        title=title,
        artist=artist,
        album=album,
        duration_seconds=float(length_us) / 1_000_000,
        media_kind=media_kind_for_url(url),
    )


@dataclass
class _TrackMarks:
    rating: int = 0
    loved: bool = False
    disliked: bool = False


class MPRISPlayer(EventEmitter):
    """Player adapter for any MPRIS2-capable player.

    MPRIS has no properties for ratings, loves or dislikes, so those are
    tracked per track inside the adapter for as long as it runs.
    """

    def __init__(self, bus_name: str = "") -> None:
        super().__init__()
        self._requested_name = bus_name
        self._bus_name: str | None = bus_name or None
        self._bus: Any = None
        self._dbus: Any = None
        self._player: Any = None
        self._properties: Any = None
        # Marks of the current track only; a new track starts clean.
        self._marks_key: tuple[str, str] | None = None
        self._marks = _TrackMarks()
        self._tasks: set[asyncio.Task] = set()

    @property
    def bus_name(self) -> str | None:
        return self._bus_name

    # ── Connection ──────────────────────────────────────────────────

    async def connect(self) -> bool:
        """Connect to the session bus and attach to the player if present."""
        if not _DBUS_AVAILABLE:
            logger.info("dbus-next is not installed -- MPRIS player support disabled")
            return False

        try:
            self._bus = await MessageBus().connect()
            introspection = await self._bus.introspect(DBUS_NAME, DBUS_PATH)
            proxy = self._bus.get_proxy_object(DBUS_NAME, DBUS_PATH, introspection)
            self._dbus = proxy.get_interface(DBUS_NAME)
            self._dbus.on_name_owner_changed(self._on_name_owner_changed)
        except Exception:
            logger.warning("Could not connect to the D-Bus session bus", exc_info=True)
            self._bus = None
            return False

        if self._bus_name is None:
            names = await self._dbus.call_list_names()
            self._bus_name = next((n for n in sorted(names) if n.startswith(MPRIS_PREFIX)), None)

        if self._bus_name and await self._dbus.call_name_has_owner(self._bus_name):
            await self._attach(self._bus_name)
        else:
            logger.info("No MPRIS player on the bus yet; waiting for one to appear")
        return True

    async def disconnect(self) -> None:
        self._detach()
        if self._bus is not None:
            self._bus.disconnect()
            self._bus = None
            self._dbus = None

    async def _attach(self, bus_name: str) -> None:
        if self._bus is None:
            return
        try:
            introspection = await self._bus.introspect(bus_name, OBJECT_PATH)
            proxy = self._bus.get_proxy_object(bus_name, OBJECT_PATH, introspection)
            self._player = proxy.get_interface(PLAYER_INTERFACE)
            self._properties = proxy.get_interface(PROPERTIES_INTERFACE)
            self._properties.on_properties_changed(self._on_properties_changed)
            logger.info("Following MPRIS player %s", bus_name)
        except Exception:
            logger.warning("Could not attach to %s", bus_name, exc_info=True)
            self._detach()

    def _detach(self) -> None:
        if self._properties is not None:
            try:
                self._properties.off_properties_changed(self._on_properties_changed)
            except Exception:
                logger.debug("Failed to remove properties listener", exc_info=True)
        self._player = None
        self._properties = None

    # ── D-Bus signal handlers ───────────────────────────────────────

    def _on_name_owner_changed(self, name: str, old_owner: str, new_owner: str) -> None:
        task = asyncio.get_running_loop().create_task(self._owner_changed(name, new_owner))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _owner_changed(self, name: str, new_owner: str) -> None:
        if not name.startswith(MPRIS_PREFIX):
            return
        if self._bus_name is None and not self._requested_name and new_owner:
            self._bus_name = name
        if name != self._bus_name:
            return

        if new_owner:
            logger.info("Player %s appeared on the bus", name)
            await self._attach(name)
        else:
            logger.info("Player %s left the bus", name)
            self._detach()
            if not self._requested_name:
                # Pick up whichever player starts next.
                self._bus_name = None
        self._dispatch(PlayerEvent.STATE_CHANGE)

    def _on_properties_changed(
        self, interface: str, changed: dict[str, Any], _invalidated: list[str]
    ) -> None:
        if interface != PLAYER_INTERFACE:
            return
        if _WATCHED_PROPERTIES.intersection(changed):
            self._dispatch(PlayerEvent.STATE_CHANGE)

    # ── Reads ───────────────────────────────────────────────────────

    async def is_running(self) -> bool:
        if self._dbus is None or self._bus_name is None:
            return False
        try:
            return bool(await self._dbus.call_name_has_owner(self._bus_name))
        except DBusError as exc:
            raise PlayerError(f"could not query {self._bus_name}: {exc}") from exc

    async def player_state(self) -> PlayerState:
        if self._player is None:
            return PlayerState.STOPPED
        try:
            status = await self._player.get_playback_status()
        except DBusError as exc:
            raise PlayerError(f"could not read playback status: {exc}") from exc
        return _STATUS_MAP.get(status, PlayerState.STOPPED)

    async def current_track(self) -> Track | None:
        if self._player is None:
            return None
        try:
            metadata = await self._player.get_metadata()
        except DBusError as exc:
            raise PlayerError(f"could not read metadata: {exc}") from exc
        return parse_metadata(metadata)

    async def _current_marks(self) -> _TrackMarks | None:
        track = await self.current_track()
        if track is None:
            return None
        key = (track.title, track.artist)
        if key != self._marks_key:
            self._marks_key = key
            self._marks = _TrackMarks()
        return self._marks

    async def is_loved(self) -> bool:
        marks = await self._current_marks()
        return bool(marks and marks.loved)

    async def is_disliked(self) -> bool:
        marks = await self._current_marks()
        return bool(marks and marks.disliked)

    # ── Mutations ───────────────────────────────────────────────────

    async def set_rating(self, rating: int) -> None:
        marks = await self._current_marks()
        if marks is not None:
            marks.rating = max(0, min(100, rating))

    async def set_loved(self, loved: bool) -> None:
        marks = await self._current_marks()
        if marks is not None:
            marks.loved = loved

    async def set_disliked(self, disliked: bool) -> None:
        marks = await self._current_marks()
        if marks is not None:
            marks.disliked = disliked

    async def _command(self, name: str, *args: Any) -> None:
        if self._player is None:
            raise PlayerError("no MPRIS player attached")
        try:
            await getattr(self._player, f"call_{name}")(*args)
        except DBusError as exc:
            raise PlayerError(f"{name} failed: {exc}") from exc

    async def play(self) -> None:
        await self._command("play")

    async def pause(self) -> None:
        await self._command("pause")

    async def seek(self, seconds: float) -> None:
        """Seek relative to the current position."""
        await self._command("seek", int(seconds * 1_000_000))

    async def set_volume(self, level: int) -> None:
        """Set volume to a specific level (clamped to 0-100)."""
        if self._player is None:
            raise PlayerError("no MPRIS player attached")
        level = max(0, min(100, level))
        try:
            await self._player.set_volume(level / 100)
        except DBusError as exc:
            raise PlayerError(f"set volume failed: {exc}") from exc
