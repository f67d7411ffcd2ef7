"""Tests for tune_scrobbler.services.responses."""

import pytest

from tune_scrobbler.exceptions import MalformedResponse
from tune_scrobbler.models import APIMethod
from tune_scrobbler.services.responses import (
    ErrorReply,
    LoveAck,
    NowPlayingAck,
    ScrobbleAck,
    SessionReply,
    TokenReply,
    UserInfoReply,
    days_since,
    interpret,
    scrobbles_per_day,
)

DAY = 86400
NOW = 1_700_000_000


class TestInterpret:
    def test_token(self):
        assert interpret(APIMethod.AUTH_TOKEN, {"token": "abc"}) == TokenReply("abc")

    def test_session(self):
        data = {"session": {"name": "alice", "key": "SK", "subscriber": 0}}
        assert interpret(APIMethod.SESSION, data) == SessionReply("alice", "SK")

    def test_now_playing(self):
        data = {"nowplaying": {"track": {"#text": "T"}, "ignoredMessage": {"code": "0"}}}
        reply = interpret(APIMethod.NOW_PLAYING, data)
        assert isinstance(reply, NowPlayingAck)
        assert reply.payload["track"] == {"#text": "T"}

    def test_scrobble_counts(self):
        data = {"scrobbles": {"scrobble": {}, "@attr": {"accepted": 1, "ignored": 0}}}
        assert interpret(APIMethod.SCROBBLE, data) == ScrobbleAck(1, 0)

    def test_scrobble_ignored(self):
        data = {"scrobbles": {"scrobble": {}, "@attr": {"accepted": "0", "ignored": "1"}}}
        assert interpret(APIMethod.SCROBBLE, data) == ScrobbleAck(0, 1)

    @pytest.mark.parametrize("method", [APIMethod.LOVE, APIMethod.UNLOVE])
    def test_love_empty_object(self, method):
        assert interpret(method, {}) == LoveAck()

    def test_love_unexpected_payload(self):
        with pytest.raises(MalformedResponse):
            interpret(APIMethod.LOVE, {"status": "ok"})

    def test_user_info(self):
        data = {"user": {"name": "alice", "playcount": "500", "registered": {"unixtime": "123"}}}
        assert interpret(APIMethod.USER_INFO, data) == UserInfoReply(500, 123)

    def test_error_payload(self):
        data = {"error": 9, "message": "Invalid session key - Please re-authenticate"}
        reply = interpret(APIMethod.SCROBBLE, data)
        assert reply == ErrorReply(9, "Invalid session key - Please re-authenticate")

    def test_error_code_as_string(self):
        assert interpret(APIMethod.LOVE, {"error": "6", "message": "x"}) == ErrorReply(6, "x")

    @pytest.mark.parametrize("method, data", [
        (APIMethod.AUTH_TOKEN, {}),
        (APIMethod.AUTH_TOKEN, {"token": ""}),
        (APIMethod.SESSION, {"session": {"name": "alice"}}),
        (APIMethod.NOW_PLAYING, {"scrobbles": {}}),
        (APIMethod.SCROBBLE, {"scrobbles": {}}),
        (APIMethod.USER_INFO, {"user": {"playcount": "1"}}),
        (APIMethod.USER_INFO, {"user": {"playcount": "lots", "registered": {"unixtime": "1"}}}),
    ])
    def test_malformed(self, method, data):
        with pytest.raises(MalformedResponse):
            interpret(method, data)

    @pytest.mark.parametrize("data", [None, [], "ok", 3])
    def test_not_an_object(self, data):
        with pytest.raises(MalformedResponse):
            interpret(APIMethod.AUTH_TOKEN, data)


class TestStatistics:
    def test_per_day_average(self):
        assert scrobbles_per_day(500, NOW - 100 * DAY, NOW) == 5.0

    def test_rounds_to_three_decimals(self):
        assert scrobbles_per_day(1000, NOW - 3 * DAY, NOW) == 333.333

    def test_registered_today_counts_as_one_day(self):
        assert scrobbles_per_day(42, NOW - 60, NOW) == 42.0

    @pytest.mark.parametrize("elapsed, expected", [
        (0, 0),
        (DAY // 2 - 1, 0),
        (DAY // 2 + 1, 1),
        (10 * DAY, 10),
    ])
    def test_days_since(self, elapsed, expected):
        assert days_since(NOW - elapsed, NOW) == expected
