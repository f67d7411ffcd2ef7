"""Error types raised while talking to the player or the scrobbling service.

Every error is local to a single request attempt.  None of them is fatal to
the scrobble engine, which logs the failure and waits for the next player
event.
"""

from __future__ import annotations


class ScrobblerError(Exception):
    """Base class for all tune-scrobbler errors."""


class MissingCredential(ScrobblerError):
    """An auth token or session key is required but not available."""


class EncodingError(ScrobblerError):
    """Request parameters could not be turned into a query string or body."""


class TransportError(ScrobblerError):
    """The HTTP request failed before a response was received."""


class MalformedResponse(ScrobblerError):
    """The service replied with JSON of an unexpected shape."""


class ServiceError(ScrobblerError):
    """The service answered with an explicit error payload."""

    # Invalid authentication, invalid session key, unauthorized token.
    _REAUTH_CODES = frozenset({4, 9, 14})

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"Last.fm error {code}: {message}")
        self.code = code
        self.message = message

    @property
    def requires_reauth(self) -> bool:
        return self.code in self._REAUTH_CODES


class PlayerError(ScrobblerError):
    """The player adapter could not read playback state or metadata."""


class ProtocolError(ScrobblerError):
    """A CLI request to the daemon was malformed or had bad arguments."""


class AlreadyRunning(ScrobblerError):
    """Another daemon process holds the PID file."""
