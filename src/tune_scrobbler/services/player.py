"""The capabilities tune-scrobbler needs from a media player.

The engine only talks to players through :class:`PlayerAdapter`.  How an
adapter reaches the real player (D-Bus, a local API, a script bridge) is up
to the adapter.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum, auto
from typing import Any, Protocol, runtime_checkable

from tune_scrobbler.models import Track


class PlayerState(StrEnum):
    PLAYING = auto()
    PAUSED = auto()
    STOPPED = auto()


class PlayerEvent(StrEnum):
    """Events emitted by a player adapter."""

    # Playback status, the current track, or whether the player runs changed.
    STATE_CHANGE = auto()


# Type alias for callback functions.
PlayerCallback = Callable[..., Any]

# Ratings are 0-100; a star is 20 points.
RATING_SCALE = 20
MAX_RATING = 100
MAX_STARS = MAX_RATING // RATING_SCALE
DISLIKED_RATING = 10


@runtime_checkable
class PlayerAdapter(Protocol):
    """Reads playback state and mutates playback on one player.

    Reads raise :class:`~tune_scrobbler.exceptions.PlayerError` when the
    player cannot be queried.
    """

    async def is_running(self) -> bool: ...

    async def player_state(self) -> PlayerState: ...

    async def current_track(self) -> Track | None: ...

    async def is_loved(self) -> bool: ...

    async def is_disliked(self) -> bool: ...

    async def set_rating(self, rating: int) -> None: ...

    async def set_loved(self, loved: bool) -> None: ...

    async def set_disliked(self, disliked: bool) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def seek(self, seconds: float) -> None: ...

    async def set_volume(self, level: int) -> None: ...

    def on(self, event: PlayerEvent, callback: PlayerCallback) -> None: ...

    def off(self, event: PlayerEvent, callback: PlayerCallback) -> None: ...
