"""The scrobble engine: decides when a track is reported as playing or played.

Rules, following Last.fm's scrobbling guidelines:

* A new song gets a "now playing" update once the player has settled.
* Tracks of 30 seconds or less are never scrobbled.
* A track becomes eligible after half its duration or 4 minutes, whichever
  comes first.
* An eligible track is scrobbled lazily, when the next event supersedes it
  (another track starts, playback stops, the player quits, or the engine is
  torn down).  Eligibility alone never submits.

Player signals, timer expiries and user intents are all messages on one
queue consumed by one worker, so engine state is only ever touched from a
single place.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import Any, Protocol, TypedDict

from tune_scrobbler.exceptions import PlayerError, ScrobblerError
from tune_scrobbler.models import APIMethod, ScrobbleCandidate, Track
from tune_scrobbler.services.events import EventEmitter, ScrobblerEvent
from tune_scrobbler.services.lastfm import LastFMService
from tune_scrobbler.services.player import (
    DISLIKED_RATING,
    MAX_RATING,
    RATING_SCALE,
    PlayerAdapter,
    PlayerEvent,
    PlayerState,
)
from tune_scrobbler.services.preferences import Preferences

logger = logging.getLogger(__name__)

# Per the Last.fm API, only tracks longer than 30 seconds are scrobbled, and
# a track counts once played for half its length or 4 minutes.
MIN_SCROBBLE_DURATION = 30
MAX_SCROBBLE_DELAY = 240
DEFAULT_SETTLE_DELAY = 5.0


def min_scrobble_seconds(duration: float) -> int:
    """Seconds a track must play before it may be scrobbled."""
    return int(min(math.ceil(duration / 2), MAX_SCROBBLE_DELAY))


def is_scrobblable(duration: float) -> bool:
    return duration > MIN_SCROBBLE_DURATION


class ScrobbleState(StrEnum):
    IDLE = auto()
    NOW_PLAYING_SENT = auto()
    ELIGIBLE = auto()
    REPORTED = auto()


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


# (delay_seconds, callback) -> handle; defaults to loop.call_later.
Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


class TrackStatus(TypedDict):
    title: str
    artist: str
    album: str
    duration: float
    started_at: int | None


class EngineStatus(TypedDict):
    """Snapshot reported by the daemon's ``status`` command."""

    state: str
    scrobbling_enabled: bool
    username: str | None
    track: TrackStatus | None
    eligible: bool


class _Kind(StrEnum):
    STATE_CHANGE = auto()
    SETTLED = auto()
    ELIGIBLE = auto()
    INTENT = auto()


@dataclass
class _Message:
    kind: _Kind
    payload: Any = None
    future: asyncio.Future | None = None


def _resolve(future: asyncio.Future | None, result: Any) -> None:
    if future is not None and not future.done():
        future.set_result(result)


class ScrobbleEngine(EventEmitter):
    """Drives now-playing and scrobble submissions from player events."""

    def __init__(
        self,
        player: PlayerAdapter,
        service: LastFMService,
        preferences: Preferences,
        *,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        clock: Callable[[], float] = time.time,
        scheduler: Scheduler | None = None,
    ) -> None:
        super().__init__()
        self._player = player
        self._service = service
        self._preferences = preferences
        self._settle_delay = settle_delay
        self._clock = clock
        self._scheduler = scheduler

        self._state = ScrobbleState.IDLE
        self._current: Track | None = None
        self._candidate: ScrobbleCandidate | None = None
        self._pending_start: int | None = None
        self._settle_timer: TimerHandle | None = None
        self._eligibility_timer: TimerHandle | None = None

        self._queue: asyncio.Queue[_Message] | None = None
        self._worker: asyncio.Task | None = None
        self._submissions: set[asyncio.Task] = set()
        self._closed = False

    # ── Properties ──────────────────────────────────────────────────

    @property
    def state(self) -> ScrobbleState:
        return self._state

    @property
    def current_track(self) -> Track | None:
        return self._current

    @property
    def candidate(self) -> ScrobbleCandidate | None:
        return self._candidate

    @property
    def is_closed(self) -> bool:
        return self._closed

    def status(self) -> EngineStatus:
        track = self._current
        return {
            "state": self._state.value,
            "scrobbling_enabled": self._preferences.scrobbling_enabled,
            "username": self._service.session.username,
            "track": None
            if track is None
            else TrackStatus(
                title=track.title,
                artist=track.artist,
                album=track.album,
                duration=track.duration_seconds,
                started_at=track.started_at,
            ),
            "eligible": bool(self._candidate and self._candidate.eligible),
        }

    # ── Lifecycle ───────────────────────────────────────────────────

    async def start(self) -> None:
        """Start consuming player events."""
        if self._worker is not None:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.get_running_loop().create_task(self._run(self._queue))
        self._player.on(PlayerEvent.STATE_CHANGE, self.notify_state_change)
        # Catch up with a player that is already playing.
        self.notify_state_change()
        logger.info("Scrobble engine started")

    async def close(self) -> None:
        """Tear the engine down.

        An eligible, unreported candidate is scrobbled first.  Pending timers
        are cancelled and other in-flight submissions are abandoned; their
        replies are dropped.
        """
        if self._closed:
            return
        final: Track | None = None
        candidate = self._candidate
        if candidate is not None and candidate.eligible and not candidate.reported:
            candidate.reported = True
            final = candidate.track

        self._closed = True
        self._player.off(PlayerEvent.STATE_CHANGE, self.notify_state_change)
        self._cancel_timers()

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        if self._queue is not None:
            while not self._queue.empty():
                message = self._queue.get_nowait()
                _resolve(message.future, False)

        for task in list(self._submissions):
            task.cancel()

        if final is not None:
            try:
                await self._service.scrobble(final)
                logger.info("Scrobbled on shutdown: %s - %s", final.artist, final.title)
            except ScrobblerError as exc:
                logger.warning("Scrobble on shutdown failed: %s", exc)

        self._current = None
        self._candidate = None
        self._state = ScrobbleState.IDLE
        logger.info("Scrobble engine stopped")

    async def wait_idle(self) -> None:
        """Wait until queued messages and issued submissions have been handled."""
        if self._queue is not None:
            await self._queue.join()
        while self._submissions:
            await asyncio.gather(*list(self._submissions), return_exceptions=True)

    # ── Message plumbing ────────────────────────────────────────────

    def notify_state_change(self, *_args: Any) -> None:
        """Player callback: something about playback changed."""
        self._post(_Kind.STATE_CHANGE)

    def _post(self, kind: _Kind, payload: Any = None) -> None:
        if self._closed or self._queue is None:
            return
        self._queue.put_nowait(_Message(kind, payload))

    def _schedule(self, delay: float, kind: _Kind, payload: Any = None) -> TimerHandle:
        def fire() -> None:
            self._post(kind, payload)

        if self._scheduler is not None:
            return self._scheduler(delay, fire)
        return asyncio.get_running_loop().call_later(delay, fire)

    async def _run(self, queue: asyncio.Queue[_Message]) -> None:
        while True:
            message = await queue.get()
            try:
                await self._handle(message)
            except asyncio.CancelledError:
                # Torn down mid-intent: the caller gets the closed-engine answer.
                _resolve(message.future, False)
                raise
            except Exception as exc:
                logger.exception("Error handling %s", message.kind)
                if message.future is not None and not message.future.done():
                    message.future.set_exception(exc)
            finally:
                queue.task_done()

    async def _handle(self, message: _Message) -> None:
        match message.kind:
            case _Kind.STATE_CHANGE:
                await self._on_state_change()
            case _Kind.SETTLED:
                await self._on_settled()
            case _Kind.ELIGIBLE:
                self._on_eligible(message.payload)
            case _Kind.INTENT:
                _resolve(message.future, await message.payload())

    async def _run_intent(self, fn: Callable[[], Awaitable[Any]]) -> Any:
        if self._closed:
            return False
        if self._queue is None:
            return await fn()
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Message(_Kind.INTENT, fn, future))
        return await future

    # ── Transitions ─────────────────────────────────────────────────

    def _set_state(self, state: ScrobbleState) -> None:
        if state != self._state:
            logger.debug("Scrobble state: %s -> %s", self._state, state)
            self._state = state
            self._dispatch(ScrobblerEvent.STATE_CHANGED, state)

    def _cancel_timers(self) -> None:
        if self._settle_timer is not None:
            self._settle_timer.cancel()
            self._settle_timer = None
        if self._eligibility_timer is not None:
            self._eligibility_timer.cancel()
            self._eligibility_timer = None

    def _go_idle(self) -> None:
        self._cancel_timers()
        self._current = None
        self._candidate = None
        self._pending_start = None
        self._set_state(ScrobbleState.IDLE)

    def _supersede(self) -> None:
        """Scrobble the candidate being replaced if it was listened to long enough."""
        candidate = self._candidate
        if candidate is None or not candidate.eligible or candidate.reported:
            return
        candidate.reported = True
        logger.info("Scrobbling %s - %s", candidate.track.artist, candidate.track.title)
        self._submit(APIMethod.SCROBBLE, candidate.track)
        self._set_state(ScrobbleState.REPORTED)

    async def _on_state_change(self) -> None:
        if not self._preferences.scrobbling_enabled:
            logger.debug("Scrobbling is not enabled. Ignoring player state change")
            return

        try:
            running = await self._player.is_running()
            state = await self._player.player_state() if running else PlayerState.STOPPED
        except PlayerError as exc:
            logger.warning("Could not read player state: %s", exc)
            return

        logger.debug("Player state change detected: %s", state if running else "not running")
        if not running or state == PlayerState.STOPPED:
            self._supersede()
            self._go_idle()
            return
        if state == PlayerState.PAUSED:
            return

        self._pending_start = int(self._clock())
        if self._settle_timer is not None:
            self._settle_timer.cancel()
        # Gives a quitting or relaunching player time to report its real state.
        self._settle_timer = self._schedule(self._settle_delay, _Kind.SETTLED)

    async def _on_settled(self) -> None:
        self._settle_timer = None
        if not self._preferences.scrobbling_enabled:
            return

        try:
            if not await self._player.is_running():
                logger.info("Player isn't running")
                self._supersede()
                self._go_idle()
                return
            if await self._player.player_state() != PlayerState.PLAYING:
                logger.debug("Player is not playing; nothing to report")
                return
            track = await self._player.current_track()
        except PlayerError as exc:
            logger.warning("Couldn't read track information: %s", exc)
            return

        if track is None or not track.title or not track.artist:
            logger.info("Couldn't read track information")
            return
        if not track.is_song:
            logger.info("Media isn't a song, ignoring state change")
            return

        current = self._current
        if current is not None and track.same_song(current):
            # Resumed or re-announced: refresh now playing, keep the candidate.
            self._submit(APIMethod.NOW_PLAYING, current)
            return

        self._supersede()

        started_at = self._pending_start if self._pending_start is not None else int(self._clock())
        self._pending_start = None
        current = track.with_start(started_at)
        self._current = current
        self._candidate = None
        if self._eligibility_timer is not None:
            self._eligibility_timer.cancel()
            self._eligibility_timer = None

        self._submit(APIMethod.NOW_PLAYING, current)
        self._set_state(ScrobbleState.NOW_PLAYING_SENT)

        if not is_scrobblable(current.duration_seconds):
            logger.info(
                "Not scrobbling track since it's 30 seconds or shorter: %s",
                current.duration_seconds,
            )
            return

        candidate = ScrobbleCandidate(current)
        self._candidate = candidate
        delay = min_scrobble_seconds(current.duration_seconds)
        self._eligibility_timer = self._schedule(delay, _Kind.ELIGIBLE, candidate)

    def _on_eligible(self, candidate: ScrobbleCandidate) -> None:
        if candidate is not self._candidate or candidate.reported:
            return
        self._eligibility_timer = None
        candidate.eligible = True
        logger.info("Track can now be scrobbled: %s", candidate.track.title)
        self._set_state(ScrobbleState.ELIGIBLE)

    # ── Submissions ─────────────────────────────────────────────────

    def _submit(self, method: APIMethod, track: Track) -> None:
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(method, track))
        self._submissions.add(task)
        task.add_done_callback(self._submissions.discard)

    async def _deliver(self, method: APIMethod, track: Track) -> None:
        senders = {
            APIMethod.NOW_PLAYING: self._service.now_playing,
            APIMethod.SCROBBLE: self._service.scrobble,
            APIMethod.LOVE: self._service.love,
            APIMethod.UNLOVE: self._service.unlove,
        }
        try:
            await senders[method](track)
        except ScrobblerError as exc:
            if self._closed:
                return
            logger.warning("%s failed for %s - %s: %s", method, track.artist, track.title, exc)
            self._dispatch(ScrobblerEvent.SUBMISSION_FAILED, method, track, exc)
            return
        if self._closed:
            logger.debug("Dropping %s reply received after teardown", method)
            return
        self._dispatch(ScrobblerEvent.SUBMISSION_SUCCEEDED, method, track, None)

    # ── User intents ────────────────────────────────────────────────

    async def _active_track(self) -> Track | None:
        if not await self._player.is_running():
            return None
        if await self._player.player_state() == PlayerState.STOPPED:
            return None
        return await self._player.current_track()

    async def _apply_love(self, loved: bool) -> bool:
        track = await self._active_track()
        if track is None:
            logger.debug("Nothing playing; ignoring love change")
            return False
        if await self._player.is_loved() == loved:
            return False
        if loved:
            # A track can't be both loved and disliked.
            await self._player.set_loved(True)
            await self._player.set_disliked(False)
            await self._player.set_rating(MAX_RATING)
            self._submit(APIMethod.LOVE, track.identity())
        else:
            await self._player.set_loved(False)
            self._submit(APIMethod.UNLOVE, track.identity())
        return True

    async def _apply_dislike(self, disliked: bool) -> bool:
        track = await self._active_track()
        if track is None:
            logger.debug("Nothing playing; ignoring dislike change")
            return False
        if await self._player.is_disliked() == disliked:
            return False
        if disliked:
            await self._player.set_disliked(True)
            await self._player.set_loved(False)
            await self._player.set_rating(DISLIKED_RATING)
            self._submit(APIMethod.UNLOVE, track.identity())
        else:
            await self._player.set_disliked(False)
        return True

    async def love(self, loved: bool = True) -> bool:
        """Love (or unlove) the current track. Returns False when nothing changed."""
        return await self._run_intent(lambda: self._apply_love(loved))

    async def dislike(self, disliked: bool = True) -> bool:
        """Dislike (or undislike) the current track. Returns False when nothing changed."""
        return await self._run_intent(lambda: self._apply_dislike(disliked))

    async def toggle_love(self) -> bool:
        async def toggle() -> bool:
            return await self._apply_love(not await self._player.is_loved())

        return await self._run_intent(toggle)

    async def toggle_dislike(self) -> bool:
        async def toggle() -> bool:
            return await self._apply_dislike(not await self._player.is_disliked())

        return await self._run_intent(toggle)

    async def rate(self, stars: int) -> bool:
        """Rate the current track from 0 to 5 stars."""
        stars = max(0, min(5, stars))

        async def apply() -> bool:
            if await self._active_track() is None:
                return False
            await self._player.set_rating(stars * RATING_SCALE)
            return True

        return await self._run_intent(apply)
