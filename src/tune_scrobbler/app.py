"""The scrobbler daemon: wires the player, the engine and the Last.fm client together."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from tune_scrobbler.config.paths import CONFIG_FILE, PID_FILE, SOCKET_PATH
from tune_scrobbler.config.settings import Settings
from tune_scrobbler.exceptions import ScrobblerError, ServiceError
from tune_scrobbler.ipc import Command, IPCServer, PidFile, Reply, Request
from tune_scrobbler.models import APIMethod, Track
from tune_scrobbler.services.events import ScrobblerEvent
from tune_scrobbler.services.lastfm import LastFMService
from tune_scrobbler.services.mpris import MPRISPlayer
from tune_scrobbler.services.player import PlayerAdapter
from tune_scrobbler.services.preferences import Preferences
from tune_scrobbler.services.scrobbler import ScrobbleEngine, ScrobbleState

logger = logging.getLogger(__name__)


class ScrobblerApp:
    """Long-running daemon that scrobbles whatever the followed player plays.

    Runs until :meth:`stop` is called or the process receives SIGINT or
    SIGTERM, and answers CLI commands over the IPC socket meanwhile.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        config_path: Path = CONFIG_FILE,
        player: PlayerAdapter | None = None,
        socket_path: Path = SOCKET_PATH,
        pid_file: Path = PID_FILE,
    ) -> None:
        self.settings = settings if settings is not None else Settings.load(config_path)
        self.preferences = Preferences(self.settings, config_path)
        self.service = LastFMService(
            self.settings.lastfm.api_key,
            self.settings.lastfm.api_secret,
            self.preferences,
            timeout=self.settings.lastfm.api_timeout,
        )
        self.player: PlayerAdapter = (
            player if player is not None else MPRISPlayer(self.settings.player.bus_name)
        )
        self.engine = ScrobbleEngine(
            self.player,
            self.service,
            self.preferences,
            settle_delay=self.settings.general.settle_delay,
        )
        self.ipc = IPCServer(self.handle_request, socket_path)
        self.pid_file = PidFile(pid_file)
        self._stopping: asyncio.Event | None = None

    # ── Lifecycle ───────────────────────────────────────────────────

    async def run(self) -> None:
        """Start everything and block until asked to stop."""
        self.pid_file.acquire()
        self._stopping = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop)

        if not self.service.is_configured:
            logger.warning("No Last.fm API key configured; submissions will fail")
        elif not self.service.is_authenticated:
            logger.warning("Not signed in to Last.fm. Run `tune-scrobbler auth` first.")

        self.engine.on(ScrobblerEvent.SUBMISSION_FAILED, self._on_submission_failed)
        self.engine.on(ScrobblerEvent.STATE_CHANGED, self._on_state_changed)

        connect = getattr(self.player, "connect", None)
        if connect is not None:
            await connect()

        try:
            await self.ipc.start()
            await self.engine.start()
            await self._stopping.wait()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            await self.shutdown()

    def stop(self) -> None:
        logger.info("Shutting down")
        if self._stopping is not None:
            self._stopping.set()

    async def shutdown(self) -> None:
        await self.ipc.stop()
        # The engine may still submit its last eligible track here.
        await self.engine.close()
        self.service.close()
        disconnect = getattr(self.player, "disconnect", None)
        if disconnect is not None:
            await disconnect()
        self.engine.clear_callbacks()
        self.pid_file.release()

    # ── Engine events ───────────────────────────────────────────────

    def _on_submission_failed(
        self, method: APIMethod, track: Track, error: ScrobblerError
    ) -> None:
        if isinstance(error, ServiceError) and error.requires_reauth:
            logger.error(
                "Last.fm rejected the session (%s). Run `tune-scrobbler auth` to sign in again.",
                error.message,
            )

    def _on_state_changed(self, state: ScrobbleState) -> None:
        track = self.engine.current_track
        if state == ScrobbleState.NOW_PLAYING_SENT and track is not None:
            logger.info("Now playing: %s - %s", track.artist, track.title)

    # ── IPC ─────────────────────────────────────────────────────────

    async def handle_request(self, request: Request) -> Reply:
        """Answer one validated IPC request from the CLI."""
        try:
            match request.command:
                case Command.STATUS:
                    return {"ok": True, "data": self.engine.status()}
                case Command.PLAY:
                    await self.player.play()
                    return {"ok": True}
                case Command.PAUSE:
                    await self.player.pause()
                    return {"ok": True}
                case Command.LOVE:
                    return {"ok": True, "changed": await self.engine.love(True)}
                case Command.UNLOVE:
                    return {"ok": True, "changed": await self.engine.love(False)}
                case Command.DISLIKE:
                    return {"ok": True, "changed": await self.engine.dislike(True)}
                case Command.UNDISLIKE:
                    return {"ok": True, "changed": await self.engine.dislike(False)}
                case Command.RATE:
                    return {"ok": True, "changed": await self.engine.rate(request.stars)}
                case Command.ENABLE:
                    return self._enable()
                case Command.DISABLE:
                    self.preferences.set_scrobbling_enabled(False)
                    return {"ok": True}
        except ScrobblerError as exc:
            return {"ok": False, "error": str(exc)}

    def _enable(self) -> Reply:
        # `tune-scrobbler auth` may have stored a new session since startup.
        self.preferences.reload()
        self.service.reload_session()
        if not self.service.is_authenticated:
            return {"ok": False, "error": "Not signed in. Run `tune-scrobbler auth` first."}
        self.preferences.set_scrobbling_enabled(True)
        self.engine.notify_state_change()
        return {"ok": True}
