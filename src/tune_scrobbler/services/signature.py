"""Last.fm API method signatures.

A signature is the MD5 of every ``name + value`` pair of the call, ordered by
parameter name, followed by the shared secret.  MD5 is what the service
verifies against; it is not a security choice and must not be swapped out.
"""

from __future__ import annotations

import hashlib
import logging

from tune_scrobbler.exceptions import EncodingError, MissingCredential
from tune_scrobbler.models import APIMethod, Session, Track, describe

logger = logging.getLogger(__name__)


def signing_params(
    method: APIMethod,
    api_key: str,
    session: Session,
    track: Track | None = None,
) -> dict[str, str]:
    """Return the parameters that make up the signature for *method*.

    The same field set is sent as the POST body for state-changing calls.
    """
    descriptor = describe(method)
    if not descriptor.signed:
        raise EncodingError(f"{method} is not a signed method")

    params: dict[str, str] = {"api_key": api_key, "method": method.value}

    if "token" in descriptor.fields:
        if not session.auth_token:
            raise MissingCredential(f"{method} requires an auth token")
        params["token"] = session.auth_token

    if not descriptor.needs_session:
        return params

    if not session.session_key:
        raise MissingCredential(f"{method} requires a session key")
    params["sk"] = session.session_key

    if track is None:
        raise EncodingError(f"{method} requires a track")
    if not track.title or not track.artist:
        raise EncodingError(f"{method} requires a track title and artist")
    params["track"] = track.title
    params["artist"] = track.artist

    if "album" in descriptor.fields:
        params["album"] = track.album or ""
        params["duration"] = str(int(track.duration_seconds))

    if "timestamp" in descriptor.fields:
        if track.started_at is None:
            raise EncodingError(f"{method} requires the track start timestamp")
        params["timestamp"] = str(int(track.started_at))

    return params


def sign(params: dict[str, str], secret: str) -> str:
    """MD5 hex digest of the sorted ``name + value`` pairs plus *secret*."""
    raw = "".join(f"{name}{params[name]}" for name in sorted(params)) + secret
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def sign_method(
    method: APIMethod,
    api_key: str,
    secret: str,
    session: Session,
    track: Track | None = None,
) -> tuple[dict[str, str], str]:
    """Build the signed field set for *method* and return it with its signature."""
    params = signing_params(method, api_key, session, track)
    signature = sign(params, secret)
    logger.debug("Generated signature for %s", method)
    return params, signature
