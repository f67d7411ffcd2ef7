"""Control channel between the CLI and the running scrobbler daemon.

Each CLI invocation opens the daemon's Unix socket, writes one JSON request
(``{"command": "rate", "args": {"stars": 4}}``), half-closes, and reads one
JSON reply.  Requests are checked against :data:`Command` and its argument
rules before the daemon sees them, so handlers only ever receive a
well-formed :class:`Request`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import stat
from dataclasses import dataclass
from enum import StrEnum, auto
from pathlib import Path
from typing import Any, Awaitable, Callable, Required, TypedDict

from tune_scrobbler.config.paths import PID_FILE, SOCKET_PATH
from tune_scrobbler.exceptions import AlreadyRunning, ProtocolError
from tune_scrobbler.services.player import MAX_STARS
from tune_scrobbler.services.scrobbler import EngineStatus

logger = logging.getLogger(__name__)

# A request is a command name and at most one small argument.
_MAX_REQUEST = 4096
_CLIENT_TIMEOUT = 5  # seconds


class Command(StrEnum):
    STATUS = auto()
    PLAY = auto()
    PAUSE = auto()
    LOVE = auto()
    UNLOVE = auto()
    DISLIKE = auto()
    UNDISLIKE = auto()
    RATE = auto()
    ENABLE = auto()
    DISABLE = auto()


@dataclass(frozen=True)
class Request:
    command: Command
    stars: int = 0


class Reply(TypedDict, total=False):
    ok: Required[bool]
    error: str
    # Intent commands: False when the track already had that mark.
    changed: bool
    data: EngineStatus


RequestHandler = Callable[[Request], Awaitable[Reply]]


def parse_request(raw: bytes) -> Request:
    """Decode and validate one request; raise :class:`ProtocolError` if it is bad."""
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError("invalid JSON") from exc
    if not isinstance(payload, dict):
        raise ProtocolError("expected JSON object")

    name = payload.get("command")
    try:
        command = Command(name)
    except ValueError:
        raise ProtocolError(f"unknown command: {name}") from None

    args = payload.get("args") or {}
    if not isinstance(args, dict):
        raise ProtocolError("args must be a JSON object")

    if command is Command.RATE:
        stars = args.pop("stars", None)
        if not isinstance(stars, int) or isinstance(stars, bool) or not 0 <= stars <= MAX_STARS:
            raise ProtocolError(f"stars must be an integer from 0 to {MAX_STARS}")
    else:
        stars = 0
    if args:
        raise ProtocolError(f"{command} does not take {', '.join(sorted(args))}")
    return Request(command, stars)


def encode_request(command: str, args: dict[str, Any] | None = None) -> bytes:
    return json.dumps({"command": command, "args": args or {}}).encode()


# ---------------------------------------------------------------------------
# PID file
# ---------------------------------------------------------------------------


class PidFile:
    """Single-instance marker holding the daemon's process id."""

    def __init__(self, path: Path = PID_FILE) -> None:
        self.path = path

    def read(self) -> int | None:
        try:
            return int(self.path.read_text().strip())
        except FileNotFoundError:
            return None
        except (ValueError, OSError):
            self.path.unlink(missing_ok=True)
            return None

    def is_alive(self) -> bool:
        """True when the recorded process still exists; stale files are removed."""
        pid = self.read()
        if pid is None:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            self.path.unlink(missing_ok=True)
            return False
        except PermissionError:
            # Exists, but belongs to someone else.
            return True
        return True

    def acquire(self) -> None:
        pid = self.read()
        if pid is not None and pid != os.getpid() and self.is_alive():
            raise AlreadyRunning(f"tune-scrobbler is already running (pid {pid}).")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(str(os.getpid()))
        os.chmod(self.path, stat.S_IRUSR | stat.S_IWUSR)

    def release(self) -> None:
        if self.read() == os.getpid():
            self.path.unlink(missing_ok=True)


def is_daemon_running(pid_file: Path = PID_FILE) -> bool:
    return PidFile(pid_file).is_alive()


# ---------------------------------------------------------------------------
# Server (runs inside the daemon's event loop)
# ---------------------------------------------------------------------------


class IPCServer:
    """Unix-socket server that hands validated requests to *handler*."""

    def __init__(self, handler: RequestHandler, socket_path: Path = SOCKET_PATH) -> None:
        self._handler = handler
        self._socket_path = socket_path
        self._server: asyncio.AbstractServer | None = None

    async def start(self) -> None:
        # A socket left behind by a crashed daemon blocks the bind.
        self._socket_path.unlink(missing_ok=True)
        self._server = await asyncio.start_unix_server(
            self._client_connected, path=str(self._socket_path)
        )
        os.chmod(self._socket_path, stat.S_IRUSR | stat.S_IWUSR)
        logger.info("IPC server listening on %s", self._socket_path)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        self._socket_path.unlink(missing_ok=True)
        logger.info("IPC server stopped")

    async def _answer(self, raw: bytes) -> Reply:
        if len(raw) > _MAX_REQUEST:
            return {"ok": False, "error": "request too large"}
        try:
            request = parse_request(raw)
        except ProtocolError as exc:
            logger.debug("Rejected IPC request: %s", exc)
            return {"ok": False, "error": str(exc)}
        logger.debug("IPC request: %s", request)
        return await self._handler(request)

    async def _client_connected(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            raw = await asyncio.wait_for(reader.read(_MAX_REQUEST + 1), timeout=_CLIENT_TIMEOUT)
            if raw:
                reply = await self._answer(raw)
                writer.write(json.dumps(reply).encode())
                await writer.drain()
        except asyncio.TimeoutError:
            logger.debug("IPC client timed out")
        except Exception:
            logger.exception("Error answering IPC client")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass


# ---------------------------------------------------------------------------
# Client (used by CLI commands)
# ---------------------------------------------------------------------------


async def _exchange(payload: bytes, socket_path: Path) -> Reply:
    reader, writer = await asyncio.open_unix_connection(str(socket_path))
    try:
        writer.write(payload)
        writer.write_eof()
        await writer.drain()
        raw = await reader.read()
    finally:
        writer.close()
        await writer.wait_closed()
    return json.loads(raw)


def ipc_request(
    command: str,
    args: dict[str, Any] | None = None,
    timeout: float = _CLIENT_TIMEOUT,
    socket_path: Path = SOCKET_PATH,
) -> Reply:
    """Send one command to the running daemon and return its reply.

    Raises ``FileNotFoundError`` or ``ConnectionRefusedError`` when no daemon
    is listening, and ``TimeoutError`` when it does not answer in time.
    """
    exchange = _exchange(encode_request(command, args), socket_path)
    return asyncio.run(asyncio.wait_for(exchange, timeout))
