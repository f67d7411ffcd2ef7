"""Typed decoding of Last.fm JSON replies.

Each method's reply is decoded once, here, into one of the result types
below.  Callers never look at raw dictionaries.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from tune_scrobbler.exceptions import MalformedResponse
from tune_scrobbler.models import APIMethod

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 60 * 60 * 24


@dataclass(frozen=True)
class TokenReply:
    token: str


@dataclass(frozen=True)
class SessionReply:
    username: str
    key: str


@dataclass(frozen=True)
class NowPlayingAck:
    payload: dict


@dataclass(frozen=True)
class ScrobbleAck:
    accepted: int
    ignored: int


@dataclass(frozen=True)
class LoveAck:
    pass


@dataclass(frozen=True)
class UserInfoReply:
    playcount: int
    registered: int


@dataclass(frozen=True)
class ErrorReply:
    code: int
    message: str


Reply = (
    TokenReply | SessionReply | NowPlayingAck | ScrobbleAck | LoveAck | UserInfoReply | ErrorReply
)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return None
    return None


def _scrobble_counts(scrobbles: dict) -> tuple[int, int]:
    attrs = scrobbles.get("@attr")
    if not isinstance(attrs, dict):
        return 1, 0
    return _as_int(attrs.get("accepted")) or 0, _as_int(attrs.get("ignored")) or 0


def interpret(method: APIMethod, data: Any) -> Reply:
    """Decode the reply *data* (already parsed JSON) for *method*.

    Raises :class:`MalformedResponse` when the payload does not carry the
    fields the method needs.
    """
    if not isinstance(data, dict):
        raise MalformedResponse(f"{method}: expected a JSON object, got {type(data).__name__}")

    if "error" in data:
        code = _as_int(data.get("error"))
        if code is not None:
            return ErrorReply(code, str(data.get("message", "")))

    match method:
        case APIMethod.AUTH_TOKEN:
            token = data.get("token")
            if not isinstance(token, str) or not token:
                raise MalformedResponse(f"no token in reply: {data}")
            return TokenReply(token)

        case APIMethod.SESSION:
            session = data.get("session")
            if not isinstance(session, dict):
                raise MalformedResponse(f"no session in reply: {data}")
            name, key = session.get("name"), session.get("key")
            if not isinstance(name, str) or not isinstance(key, str) or not key:
                raise MalformedResponse(f"incomplete session in reply: {data}")
            return SessionReply(name, key)

        case APIMethod.NOW_PLAYING:
            now_playing = data.get("nowplaying")
            if not isinstance(now_playing, dict):
                raise MalformedResponse(f"no nowplaying acknowledgment: {data}")
            return NowPlayingAck(now_playing)

        case APIMethod.SCROBBLE:
            scrobbles = data.get("scrobbles")
            if not isinstance(scrobbles, dict) or scrobbles.get("scrobble") is None:
                raise MalformedResponse(f"no scrobble acknowledgment: {data}")
            return ScrobbleAck(*_scrobble_counts(scrobbles))

        case APIMethod.LOVE | APIMethod.UNLOVE:
            # Last.fm answers a successful love/unlove with an empty object.
            if data:
                raise MalformedResponse(f"unexpected love/unlove reply: {data}")
            return LoveAck()

        case APIMethod.USER_INFO:
            user = data.get("user")
            if not isinstance(user, dict):
                raise MalformedResponse(f"no user in reply: {data}")
            playcount = _as_int(user.get("playcount"))
            registered = user.get("registered")
            unixtime = _as_int(registered.get("unixtime")) if isinstance(registered, dict) else None
            if playcount is None or unixtime is None:
                raise MalformedResponse(f"incomplete user info: {data}")
            return UserInfoReply(playcount, unixtime)

    raise MalformedResponse(f"no interpreter for {method}")


def days_since(registered: int, now: float | None = None) -> int:
    """Whole days (rounded) between *registered* and *now*."""
    if now is None:
        now = time.time()
    return round((now - registered) / _SECONDS_PER_DAY)


def scrobbles_per_day(playcount: int, registered: int, now: float | None = None) -> float:
    """Average scrobbles per day since registration, to three decimals.

    Registration today counts as one day.
    """
    days = max(1, days_since(registered, now))
    return round(playcount / days * 1000) / 1000
