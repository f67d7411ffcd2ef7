"""Last.fm web service client for tune-scrobbler.

Signs, builds and sends one API call at a time and decodes the reply.
Authentication follows the desktop flow: fetch a token, let the user approve
it in a browser, then exchange it for a session key that is persisted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import requests

from tune_scrobbler.exceptions import (
    MalformedResponse,
    MissingCredential,
    ServiceError,
    TransportError,
)
from tune_scrobbler.models import APIMethod, Session, Track, describe
from tune_scrobbler.services.events import EventEmitter, ScrobblerEvent
from tune_scrobbler.services.preferences import Preferences
from tune_scrobbler.services.request_builder import Request, approval_url, build_request
from tune_scrobbler.services.responses import (
    ErrorReply,
    LoveAck,
    NowPlayingAck,
    Reply,
    ScrobbleAck,
    SessionReply,
    TokenReply,
    UserInfoReply,
    interpret,
    scrobbles_per_day,
)
from tune_scrobbler.services.signature import sign_method

logger = logging.getLogger(__name__)

_R = TypeVar("_R")


@dataclass(frozen=True)
class UserStats:
    username: str
    playcount: int
    registered: int
    per_day: float


class LastFMService(EventEmitter):
    """Owns the Last.fm session and performs API calls.

    Signed requests go out one at a time, in the order they were issued.
    HTTP itself runs in a worker thread so the event loop never blocks.
    """

    def __init__(
        self,
        api_key: str = "",
        api_secret: str = "",
        preferences: Preferences | None = None,
        *,
        timeout: int = 15,
        http: requests.Session | None = None,
        opener: Callable[[str], Any] | None = None,
    ) -> None:
        super().__init__()
        self._api_key = api_key
        self._api_secret = api_secret
        self._preferences = preferences
        self._timeout = timeout
        self._http = http if http is not None else requests.Session()
        self._opener = opener
        self._send_lock = asyncio.Lock()
        self._closed = False
        self.session = Session()
        if preferences is not None:
            self.session.session_key = preferences.session_key
            self.session.username = preferences.username

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key and self._api_secret)

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    # ── Requests ────────────────────────────────────────────────────

    def _prepare(self, method: APIMethod, track: Track | None) -> Request:
        if not self.is_configured:
            raise MissingCredential("Last.fm API key and secret are not configured")
        if describe(method).signed:
            params, signature = sign_method(
                method, self._api_key, self._api_secret, self.session, track
            )
        else:
            params, signature = {"api_key": self._api_key}, None
        return build_request(method, params, signature, username=self.session.username)

    def _send(self, request: Request) -> Any:
        """Blocking HTTP round trip returning the decoded JSON."""
        try:
            resp = self._http.request(
                request.method,
                request.url,
                data=request.body,
                headers=request.headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"Error communicating with Last.fm: {exc}") from exc
        # Last.fm reports API errors as JSON with a 4xx status, so parse first.
        try:
            return resp.json()
        except ValueError as exc:
            raise MalformedResponse(f"non-JSON reply (HTTP {resp.status_code})") from exc

    async def call(self, method: APIMethod, track: Track | None = None) -> Reply:
        """Perform one API call and return its decoded reply.

        Raises a :class:`~tune_scrobbler.exceptions.ScrobblerError` subclass
        on any failure; an error payload from the service becomes
        :class:`ServiceError`.
        """
        request = self._prepare(method, track)
        logger.debug("Sending %s %s", request.method, method)
        async with self._send_lock:
            data = await asyncio.to_thread(self._send, request)
        reply = interpret(method, data)
        if isinstance(reply, ErrorReply):
            raise ServiceError(reply.code, reply.message)
        return reply

    @staticmethod
    def _expect(reply: Reply, kind: type[_R]) -> _R:
        if not isinstance(reply, kind):
            raise MalformedResponse(f"expected {kind.__name__}, got {type(reply).__name__}")
        return reply

    # ── Authentication ──────────────────────────────────────────────

    async def request_token(self) -> str:
        """Fetch an auth token and return the URL where the user approves it."""
        reply = self._expect(await self.call(APIMethod.AUTH_TOKEN), TokenReply)
        self.session.auth_token = reply.token
        return approval_url(self._api_key, reply.token)

    async def authenticate(self) -> str:
        """Start authentication: get a token and hand the approval URL to the opener."""
        url = await self.request_token()
        if self._opener is not None:
            self._opener(url)
        return url

    async def fetch_session(self) -> str | None:
        """Exchange the approved token for a session key and persist it.

        Returns the authenticated username, or None when the reply arrived
        after :meth:`close`.
        """
        reply = self._expect(await self.call(APIMethod.SESSION), SessionReply)
        if self._closed:
            logger.debug("Dropping session reply received after close")
            return None

        self.session.session_key = reply.key
        self.session.username = reply.username
        self.session.auth_token = None
        if self._preferences is not None:
            self._preferences.set_session(reply.key, reply.username)
            self._preferences.set_scrobbling_enabled(True)
        logger.info("Authenticated as: %s", reply.username)
        self._dispatch(ScrobblerEvent.SESSION_AUTHENTICATED, reply.username)
        return reply.username

    def reload_session(self) -> None:
        """Pick up the session persisted in the preferences."""
        if self._preferences is None:
            return
        self.session.session_key = self._preferences.session_key
        self.session.username = self._preferences.username

    def logout(self) -> None:
        self.session = Session()
        if self._preferences is not None:
            self._preferences.clear_session()

    # ── Track calls ─────────────────────────────────────────────────

    async def now_playing(self, track: Track) -> NowPlayingAck:
        reply = self._expect(await self.call(APIMethod.NOW_PLAYING, track), NowPlayingAck)
        logger.debug("Now playing: %s - %s", track.artist, track.title)
        return reply

    async def scrobble(self, track: Track) -> ScrobbleAck:
        reply = self._expect(await self.call(APIMethod.SCROBBLE, track), ScrobbleAck)
        if reply.ignored:
            logger.warning("Last.fm ignored scrobble: %s - %s", track.artist, track.title)
        else:
            logger.debug("Scrobbled: %s - %s", track.artist, track.title)
        return reply

    async def love(self, track: Track) -> LoveAck:
        return self._expect(await self.call(APIMethod.LOVE, track.identity()), LoveAck)

    async def unlove(self, track: Track) -> LoveAck:
        return self._expect(await self.call(APIMethod.UNLOVE, track.identity()), LoveAck)

    async def user_info(self, now: float | None = None) -> UserStats:
        """Play count and average scrobbles per day for the signed-in user."""
        reply = self._expect(await self.call(APIMethod.USER_INFO), UserInfoReply)
        if now is None:
            now = time.time()
        per_day = scrobbles_per_day(reply.playcount, reply.registered, now)
        return UserStats(self.session.username or "", reply.playcount, reply.registered, per_day)

    # ── Lifecycle ───────────────────────────────────────────────────

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop applying replies and release the HTTP session.

        Requests already in flight are not awaited.
        """
        self._closed = True
        self._http.close()
