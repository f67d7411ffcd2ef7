"""Shared test fixtures for tune-scrobbler."""

from __future__ import annotations

import pytest

from tune_scrobbler.config.settings import Settings
from tune_scrobbler.exceptions import ScrobblerError
from tune_scrobbler.models import Session, Track
from tune_scrobbler.services.events import EventEmitter
from tune_scrobbler.services.player import PlayerEvent, PlayerState
from tune_scrobbler.services.preferences import Preferences
from tune_scrobbler.services.scrobbler import ScrobbleEngine


@pytest.fixture
def tmp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


def make_track(
    title: str = "Song A",
    artist: str = "Artist A",
    album: str = "Album A",
    duration: float = 200,
) -> Track:
    return Track(title=title, artist=artist, album=album, duration_seconds=duration)


@pytest.fixture
def sample_track() -> Track:
    return make_track()


# ── Fakes ────────────────────────────────────────────────────────────


class FakePlayer(EventEmitter):
    """In-memory player adapter driven by the tests."""

    def __init__(self) -> None:
        super().__init__()
        self.running = True
        self.state = PlayerState.STOPPED
        self.track: Track | None = None
        self.loved = False
        self.disliked = False
        self.rating = 0
        self.volume = 50
        self.commands: list[str] = []
        self.error: ScrobblerError | None = None

    def change(self, *, state: PlayerState | None = None, track=..., running=None) -> None:
        """Update the fake's state and announce it like a real player would."""
        if state is not None:
            self.state = state
        if track is not ...:
            self.track = track
        if running is not None:
            self.running = running
        self._dispatch(PlayerEvent.STATE_CHANGE)

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    async def is_running(self) -> bool:
        self._check()
        return self.running

    async def player_state(self) -> PlayerState:
        self._check()
        return self.state

    async def current_track(self) -> Track | None:
        self._check()
        return self.track

    async def is_loved(self) -> bool:
        return self.loved

    async def is_disliked(self) -> bool:
        return self.disliked

    async def set_rating(self, rating: int) -> None:
        self.rating = rating

    async def set_loved(self, loved: bool) -> None:
        self.loved = loved

    async def set_disliked(self, disliked: bool) -> None:
        self.disliked = disliked

    async def play(self) -> None:
        self.commands.append("play")
        self.state = PlayerState.PLAYING

    async def pause(self) -> None:
        self.commands.append("pause")
        self.state = PlayerState.PAUSED

    async def seek(self, seconds: float) -> None:
        self.commands.append(f"seek {seconds}")

    async def set_volume(self, level: int) -> None:
        self.volume = level


class FakeService:
    """Records the calls the engine makes instead of talking to Last.fm."""

    def __init__(self) -> None:
        self.session = Session(session_key="sk", username="tester")
        self.calls: list[tuple[str, Track]] = []
        self.error: ScrobblerError | None = None

    async def _record(self, name: str, track: Track) -> None:
        self.calls.append((name, track))
        if self.error is not None:
            raise self.error

    async def now_playing(self, track: Track) -> None:
        await self._record("now_playing", track)

    async def scrobble(self, track: Track) -> None:
        await self._record("scrobble", track)

    async def love(self, track: Track) -> None:
        await self._record("love", track)

    async def unlove(self, track: Track) -> None:
        await self._record("unlove", track)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class ManualTimer:
    def __init__(self, when: float, callback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Timer scheduler whose time only moves when a test calls :meth:`advance`."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.timers: list[ManualTimer] = []
        self.drain = None

    def __call__(self, delay: float, callback) -> ManualTimer:
        timer = ManualTimer(self.clock.now + delay, callback)
        self.timers.append(timer)
        return timer

    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.clock.now + seconds
        while True:
            due = [t for t in self.pending() if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            timer.cancelled = True
            self.clock.now = timer.when
            timer.callback()
            if self.drain is not None:
                await self.drain()
        self.clock.now = target
        if self.drain is not None:
            await self.drain()


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def preferences(tmp_config_dir) -> Preferences:
    settings = Settings()
    settings.lastfm.scrobbling_enabled = True
    settings.lastfm.session_key = "sk"
    settings.lastfm.username = "tester"
    return Preferences(settings, tmp_config_dir / "config.toml")


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
async def engine(player, service, preferences, clock, scheduler):
    eng = ScrobbleEngine(
        player, service, preferences, settle_delay=5, clock=clock, scheduler=scheduler
    )
    scheduler.drain = eng.wait_idle
    yield eng
    await eng.close()


@pytest.fixture
def track_factory():
    return make_track
