"""Turn a signed Last.fm method call into a transport-ready HTTP request."""

from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, field

from tune_scrobbler import __version__
from tune_scrobbler.exceptions import EncodingError, MissingCredential
from tune_scrobbler.models import APIMethod, describe

API_URL = "https://ws.audioscrobbler.com/2.0/"
AUTH_URL = "https://www.last.fm/api/auth/"
USER_AGENT = f"tune-scrobbler/{__version__}"

# Fields carrying user-visible text; these get the ampersand treatment.
_FREE_TEXT_FIELDS = frozenset({"track", "artist", "album"})


@dataclass(frozen=True)
class Request:
    method: str
    url: str
    body: bytes | None = None
    headers: dict[str, str] = field(default_factory=dict)


def encode_text(value: str) -> str:
    """Percent-encode a free-text field so a literal ``&`` ends up as ``%26``.

    Ampersands are escaped before generic percent-encoding, which turns them
    into ``%2526``; that sequence is collapsed back to ``%26``.
    """
    escaped = value.replace("&", "%26")
    return urllib.parse.quote(escaped, safe="").replace("%2526", "%26")


def _encode_pair(name: str, value: str) -> str:
    if name in _FREE_TEXT_FIELDS:
        return f"{name}={encode_text(value)}"
    return f"{name}={urllib.parse.quote(value, safe='')}"


def build_request(
    method: APIMethod,
    params: dict[str, str],
    signature: str | None,
    *,
    username: str | None = None,
) -> Request:
    """Build the GET or POST request for *method*.

    *params* is the field set produced by the signature layer (or just
    ``api_key`` for unsigned calls).  Raises :class:`MissingCredential` for a
    user-info lookup without a username and :class:`EncodingError` when a
    required field or the signature is missing.
    """
    descriptor = describe(method)
    if "api_key" not in params:
        raise EncodingError(f"{method} requires an api_key")
    if descriptor.signed and not signature:
        raise EncodingError(f"{method} requires a signature")

    headers = {"User-Agent": USER_AGENT}

    if not descriptor.is_post:
        query: list[tuple[str, str]] = [("method", method.value)]
        if method == APIMethod.USER_INFO:
            if not username:
                raise MissingCredential("user info lookup requires a username")
            query.append(("user", username))
        query.append(("api_key", params["api_key"]))
        if descriptor.signed:
            query.append(("api_sig", signature or ""))
        query.append(("format", "json"))
        if method == APIMethod.SESSION:
            token = params.get("token")
            if not token:
                raise MissingCredential("session request requires an auth token")
            query.append(("token", token))
        qs = urllib.parse.urlencode(query, quote_via=urllib.parse.quote)
        return Request("GET", f"{API_URL}?{qs}", None, headers)

    missing = [name for name in descriptor.fields if name not in params]
    if missing:
        raise EncodingError(f"{method} is missing parameters: {', '.join(missing)}")

    pairs = [_encode_pair("method", method.value)]
    pairs.extend(
        _encode_pair(name, params[name]) for name in sorted(params) if name != "method"
    )
    pairs.append(_encode_pair("api_sig", signature or ""))
    pairs.append("format=json")
    try:
        body = "&".join(pairs).encode("ascii")
    except UnicodeEncodeError as exc:
        raise EncodingError(f"could not encode body for {method}") from exc

    headers["Content-Type"] = "application/x-www-form-urlencoded"
    headers["Content-Length"] = str(len(body))
    return Request("POST", API_URL, body, headers)


def decode_form(body: bytes) -> dict[str, str]:
    """Parse a form body built by :func:`build_request` back into fields."""
    return dict(urllib.parse.parse_qsl(body.decode("ascii"), keep_blank_values=True))


def approval_url(api_key: str, token: str) -> str:
    """URL the user opens in a browser to grant access to *token*."""
    qs = urllib.parse.urlencode({"api_key": api_key, "token": token})
    return f"{AUTH_URL}?{qs}"
