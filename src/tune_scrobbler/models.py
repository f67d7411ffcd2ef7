"""Value types shared by the scrobble engine, the request layer and the adapters."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum, auto


class MediaKind(StrEnum):
    """What kind of media the player reports. Only songs are scrobbled."""

    SONG = auto()
    VIDEO = auto()
    UNKNOWN = auto()


@dataclass(frozen=True)
class Track:
    """A track as reported by the player.

    ``started_at`` is a unix timestamp set when the track begins playing.
    It is required for scrobbling and absent for now-playing-only calls.
    """

    title: str
    artist: str
    album: str = ""
    duration_seconds: float = 0.0
    started_at: int | None = None
    media_kind: MediaKind = MediaKind.SONG

    @property
    def is_song(self) -> bool:
        return self.media_kind == MediaKind.SONG

    def with_start(self, started_at: int) -> Track:
        return replace(self, started_at=started_at)

    def identity(self) -> Track:
        """Minimal title + artist track, as sent with love/unlove calls."""
        return Track(title=self.title, artist=self.artist)

    def same_song(self, other: Track | None) -> bool:
        if other is None:
            return False
        return (self.title, self.artist, self.album) == (other.title, other.artist, other.album)


@dataclass
class Session:
    """Credentials for the remote service.

    ``auth_token`` only lives between asking for a token and exchanging it
    for a session key.
    """

    auth_token: str | None = None
    session_key: str | None = None
    username: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.session_key)


@dataclass
class ScrobbleCandidate:
    """The track the engine may scrobble once it has been listened to long enough."""

    track: Track
    eligible: bool = False
    reported: bool = False


class APIMethod(StrEnum):
    """Last.fm API methods used by tune-scrobbler (values are wire names)."""

    AUTH_TOKEN = "auth.gettoken"
    SESSION = "auth.getsession"
    NOW_PLAYING = "track.updateNowPlaying"
    SCROBBLE = "track.scrobble"
    LOVE = "track.love"
    UNLOVE = "track.unlove"
    USER_INFO = "user.getInfo"


@dataclass(frozen=True)
class MethodDescriptor:
    method: APIMethod
    http_method: str
    fields: tuple[str, ...]
    signed: bool = True
    needs_session: bool = True

    @property
    def is_post(self) -> bool:
        return self.http_method == "POST"


_TRACK_FIELDS = ("album", "api_key", "artist", "duration", "method", "sk", "track")

_DESCRIPTORS: dict[APIMethod, MethodDescriptor] = {
    APIMethod.AUTH_TOKEN: MethodDescriptor(
        APIMethod.AUTH_TOKEN, "GET", ("api_key", "method"), needs_session=False
    ),
    APIMethod.SESSION: MethodDescriptor(
        APIMethod.SESSION, "GET", ("api_key", "method", "token"), needs_session=False
    ),
    APIMethod.NOW_PLAYING: MethodDescriptor(APIMethod.NOW_PLAYING, "POST", _TRACK_FIELDS),
    APIMethod.SCROBBLE: MethodDescriptor(
        APIMethod.SCROBBLE,
        "POST",
        ("album", "api_key", "artist", "duration", "method", "sk", "timestamp", "track"),
    ),
    APIMethod.LOVE: MethodDescriptor(
        APIMethod.LOVE, "POST", ("api_key", "artist", "method", "sk", "track")
    ),
    APIMethod.UNLOVE: MethodDescriptor(
        APIMethod.UNLOVE, "POST", ("api_key", "artist", "method", "sk", "track")
    ),
    APIMethod.USER_INFO: MethodDescriptor(
        APIMethod.USER_INFO, "GET", ("api_key", "method", "user"), signed=False,
        needs_session=False,
    ),
}


def describe(method: APIMethod) -> MethodDescriptor:
    return _DESCRIPTORS[method]
