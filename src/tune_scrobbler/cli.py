"""CLI entry point for tune-scrobbler.

Runs the scrobbler daemon (default) and provides subcommands for signing in
to Last.fm and for controlling a running daemon.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, NoReturn

import click

from tune_scrobbler import __version__
from tune_scrobbler.config.paths import CONFIG_FILE, ensure_dirs
from tune_scrobbler.config.settings import Settings
from tune_scrobbler.exceptions import AlreadyRunning, ScrobblerError
from tune_scrobbler.ipc import ipc_request, is_daemon_running
from tune_scrobbler.services.player import MAX_STARS
from tune_scrobbler.services.lastfm import LastFMService
from tune_scrobbler.services.preferences import Preferences
from tune_scrobbler.utils.formatting import format_playcount, format_timestamp, format_track

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _json_output(data: Any, *, compact: bool = False) -> None:
    """Print *data* as JSON to stdout."""
    indent = None if compact else 2
    click.echo(json.dumps(data, indent=indent, default=str))


def _error(msg: str) -> NoReturn:
    """Print an error message to stderr and exit with code 1."""
    click.echo(f"Error: {msg}", err=True)
    sys.exit(1)


def _require_daemon() -> None:
    """Exit with an error if the daemon is not currently running."""
    if not is_daemon_running():
        _error("tune-scrobbler is not running. Start it with `tune-scrobbler run` first.")


def _ipc(command: str, args: dict[str, Any] | None = None) -> dict[str, Any]:
    """Send an IPC command; exit with a friendly message on failure."""
    try:
        return ipc_request(command, args)
    except (ConnectionRefusedError, FileNotFoundError, OSError):
        _error("The daemon is not responding. Is tune-scrobbler running?")


def _send(command: str, done: str, unchanged: str | None = None, **args: Any) -> None:
    """Run a simple daemon command and report its outcome."""
    _require_daemon()
    resp = _ipc(command, args or None)
    if not resp.get("ok"):
        _error(resp.get("error", "unknown error"))
    if unchanged is not None and resp.get("changed") is False:
        click.echo(unchanged)
    else:
        click.echo(done)


def _service() -> tuple[LastFMService, Preferences]:
    settings = Settings.load(CONFIG_FILE)
    if not settings.lastfm.api_key or not settings.lastfm.api_secret:
        _error(f"No Last.fm API key configured. Add api_key and api_secret to {CONFIG_FILE}.")
    preferences = Preferences(settings, CONFIG_FILE)
    service = LastFMService(
        settings.lastfm.api_key,
        settings.lastfm.api_secret,
        preferences,
        timeout=settings.lastfm.api_timeout,
        opener=click.launch,
    )
    return service, preferences


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="tune-scrobbler")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """tune-scrobbler -- scrobble what your music player plays to Last.fm.

    Launch without arguments to start the scrobbler daemon.
    Use subcommands to sign in or to control a running daemon.
    """
    ensure_dirs()
    level = "DEBUG" if verbose else Settings.load(CONFIG_FILE).general.log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s: %(message)s",
    )
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


# ---------------------------------------------------------------------------
# Daemon
# ---------------------------------------------------------------------------


@main.command()
def run() -> None:
    """Run the scrobbler in the foreground."""
    if is_daemon_running():
        _error("tune-scrobbler is already running.")

    from tune_scrobbler.app import ScrobblerApp

    app = ScrobblerApp()
    if not app.preferences.first_run_complete:
        click.echo(
            "Welcome to tune-scrobbler! Sign in with `tune-scrobbler auth` to start scrobbling."
        )
        app.preferences.set_first_run_complete()
    try:
        asyncio.run(app.run())
    except AlreadyRunning as exc:
        _error(str(exc))


# ---------------------------------------------------------------------------
# Account (standalone)
# ---------------------------------------------------------------------------


@main.command()
def auth() -> None:
    """Sign in to Last.fm through the browser."""
    service, preferences = _service()

    if preferences.session_key:
        click.echo(f"Already signed in as {preferences.username}.")
        if not click.confirm("Do you want to sign in again?", default=False):
            click.echo("Sign-in cancelled.")
            return

    async def flow() -> str | None:
        try:
            url = await service.authenticate()
            click.echo(f"Approve tune-scrobbler in your browser:\n  {url}")
            click.pause("Press any key once you have allowed access...")
            return await service.fetch_session()
        finally:
            service.close()

    try:
        username = asyncio.run(flow())
    except ScrobblerError as exc:
        _error(f"Sign-in failed: {exc}")

    click.echo(f"Signed in as {username}. Scrobbling is enabled.")
    if is_daemon_running():
        _ipc("enable")


@main.command()
def logout() -> None:
    """Forget the Last.fm session and stop scrobbling."""
    service, preferences = _service()
    if not preferences.session_key:
        click.echo("Not signed in.")
        return
    service.logout()
    service.close()
    if is_daemon_running():
        _ipc("disable")
    click.echo("Signed out.")


@main.command()
@click.option("--json", "compact_json", is_flag=True, help="Compact JSON output.")
def stats(compact_json: bool) -> None:
    """Show the signed-in user's scrobble statistics."""
    service, preferences = _service()
    if not preferences.session_key:
        _error("Not signed in. Run `tune-scrobbler auth` first.")

    async def fetch():
        try:
            return await service.user_info()
        finally:
            service.close()

    try:
        info = asyncio.run(fetch())
    except ScrobblerError as exc:
        _error(f"Could not fetch statistics: {exc}")

    if compact_json:
        _json_output(
            {
                "username": info.username,
                "playcount": info.playcount,
                "registered": info.registered,
                "per_day": info.per_day,
            },
            compact=True,
        )
        return
    click.echo(f"{info.username}: {format_playcount(info.playcount, info.per_day)}")
    click.echo(f"Registered {format_timestamp(info.registered)}")


# ---------------------------------------------------------------------------
# Scrobbling switch
# ---------------------------------------------------------------------------


@main.command()
def enable() -> None:
    """Turn scrobbling on."""
    if is_daemon_running():
        _send("enable", "Scrobbling enabled.")
        return
    preferences = Preferences(path=CONFIG_FILE)
    if not preferences.session_key:
        _error("Not signed in. Run `tune-scrobbler auth` first.")
    preferences.set_scrobbling_enabled(True)
    click.echo("Scrobbling enabled.")


@main.command()
def disable() -> None:
    """Turn scrobbling off."""
    if is_daemon_running():
        _send("disable", "Scrobbling disabled.")
        return
    Preferences(path=CONFIG_FILE).set_scrobbling_enabled(False)
    click.echo("Scrobbling disabled.")


# ---------------------------------------------------------------------------
# Daemon control (require daemon running)
# ---------------------------------------------------------------------------


@main.command()
@click.option("--json", "compact_json", is_flag=True, help="Compact JSON output.")
def status(compact_json: bool) -> None:
    """Show what the scrobbler is doing."""
    _require_daemon()
    resp = _ipc("status")
    if not resp.get("ok"):
        _error(resp.get("error", "unknown error"))
    data = resp.get("data") or {}
    if compact_json:
        _json_output(data, compact=True)
        return

    click.echo(f"Scrobbling: {'on' if data.get('scrobbling_enabled') else 'off'}")
    click.echo(f"Account:    {data.get('username') or 'not signed in'}")
    click.echo(f"State:      {data.get('state')}")
    track = data.get("track")
    if track:
        click.echo(f"Track:      {format_track(track)}")
        click.echo(f"Started:    {format_timestamp(track.get('started_at'))}")
        click.echo(f"Eligible:   {'yes' if data.get('eligible') else 'no'}")


@main.command()
def play() -> None:
    """Resume playback."""
    _send("play", "Resumed.")


@main.command()
def pause() -> None:
    """Pause playback."""
    _send("pause", "Paused.")


@main.command()
def love() -> None:
    """Love the current track."""
    _send("love", "Loved.", "Nothing to love, or already loved.")


@main.command()
def unlove() -> None:
    """Remove the love from the current track."""
    _send("unlove", "Unloved.", "Nothing to unlove.")


@main.command()
def dislike() -> None:
    """Dislike the current track."""
    _send("dislike", "Disliked.", "Nothing to dislike, or already disliked.")


@main.command()
def undislike() -> None:
    """Remove the dislike from the current track."""
    _send("undislike", "Dislike removed.", "Nothing to undislike.")


@main.command()
@click.argument("stars", type=click.IntRange(0, MAX_STARS))
def rate(stars: int) -> None:
    """Rate the current track from 0 to 5 STARS."""
    _send("rate", f"Rated {stars} star{'s' if stars != 1 else ''}.", "Nothing playing.", stars=stars)
