"""Tests for the click command-line interface."""

import pytest
from click.testing import CliRunner

import tune_scrobbler.cli as cli
from tune_scrobbler.config.settings import Settings


@pytest.fixture
def config_file(tmp_config_dir, monkeypatch):
    path = tmp_config_dir / "config.toml"
    monkeypatch.setattr(cli, "CONFIG_FILE", path)
    monkeypatch.setattr(cli, "ensure_dirs", lambda: None)
    monkeypatch.setattr(cli, "is_daemon_running", lambda: False)
    return path


@pytest.fixture
def runner():
    return CliRunner()


class TestStandalone:
    def test_version(self, runner, config_file):
        result = runner.invoke(cli.main, ["--version"])
        assert result.exit_code == 0
        assert "tune-scrobbler" in result.output

    def test_disable_without_daemon(self, runner, config_file):
        settings = Settings()
        settings.lastfm.scrobbling_enabled = True
        settings.save(config_file)

        result = runner.invoke(cli.main, ["disable"])

        assert result.exit_code == 0
        assert "Scrobbling disabled." in result.output
        assert Settings.load(config_file).lastfm.scrobbling_enabled is False

    def test_enable_needs_sign_in(self, runner, config_file):
        result = runner.invoke(cli.main, ["enable"])
        assert result.exit_code == 1
        assert "Not signed in" in result.output

    def test_enable_when_signed_in(self, runner, config_file):
        settings = Settings()
        settings.lastfm.session_key = "SK"
        settings.lastfm.username = "alice"
        settings.save(config_file)

        result = runner.invoke(cli.main, ["enable"])

        assert result.exit_code == 0
        assert Settings.load(config_file).lastfm.scrobbling_enabled is True

    def test_auth_needs_api_key(self, runner, config_file):
        result = runner.invoke(cli.main, ["auth"])
        assert result.exit_code == 1
        assert "No Last.fm API key configured" in result.output

    def test_logout(self, runner, config_file):
        settings = Settings()
        settings.lastfm.api_key = "key"
        settings.lastfm.api_secret = "secret"
        settings.lastfm.session_key = "SK"
        settings.lastfm.username = "alice"
        settings.lastfm.scrobbling_enabled = True
        settings.save(config_file)

        result = runner.invoke(cli.main, ["logout"])

        assert result.exit_code == 0
        loaded = Settings.load(config_file)
        assert loaded.lastfm.session_key == ""
        assert loaded.lastfm.scrobbling_enabled is False


class TestDaemonCommands:
    @pytest.mark.parametrize("command", [["status"], ["love"], ["play"], ["rate", "3"]])
    def test_daemon_not_running(self, runner, config_file, command):
        result = runner.invoke(cli.main, command)
        assert result.exit_code == 1
        assert "not running" in result.output

    def test_rate_range(self, runner, config_file):
        result = runner.invoke(cli.main, ["rate", "7"])
        assert result.exit_code == 2

    def test_love_reports_outcome(self, runner, config_file, monkeypatch):
        sent = []
        monkeypatch.setattr(cli, "is_daemon_running", lambda: True)

        def fake_request(command, args=None):
            sent.append((command, args))
            return {"ok": True, "changed": False}

        monkeypatch.setattr(cli, "ipc_request", fake_request)

        result = runner.invoke(cli.main, ["love"])

        assert result.exit_code == 0
        assert "already loved" in result.output
        assert sent == [("love", None)]

    def test_rate_sends_stars(self, runner, config_file, monkeypatch):
        sent = []
        monkeypatch.setattr(cli, "is_daemon_running", lambda: True)
        monkeypatch.setattr(
            cli, "ipc_request", lambda command, args=None: sent.append(args) or {"ok": True}
        )

        result = runner.invoke(cli.main, ["rate", "4"])

        assert result.exit_code == 0
        assert "Rated 4 stars." in result.output
        assert sent == [{"stars": 4}]

    def test_status_output(self, runner, config_file, monkeypatch):
        monkeypatch.setattr(cli, "is_daemon_running", lambda: True)
        monkeypatch.setattr(
            cli,
            "ipc_request",
            lambda command, args=None: {
                "ok": True,
                "data": {
                    "state": "now_playing_sent",
                    "scrobbling_enabled": True,
                    "username": "alice",
                    "track": {
                        "title": "Song A",
                        "artist": "Artist A",
                        "album": "",
                        "duration": 200,
                        "started_at": 0,
                    },
                    "eligible": False,
                },
            },
        )

        result = runner.invoke(cli.main, ["status"])

        assert result.exit_code == 0
        assert "Account:    alice" in result.output
        assert "Artist A - Song A (3:20)" in result.output
        assert "1970-01-01 00:00:00 UTC" in result.output

    def test_daemon_error_exits(self, runner, config_file, monkeypatch):
        monkeypatch.setattr(cli, "is_daemon_running", lambda: True)
        monkeypatch.setattr(
            cli, "ipc_request", lambda command, args=None: {"ok": False, "error": "boom"}
        )
        result = runner.invoke(cli.main, ["pause"])
        assert result.exit_code == 1
        assert "Error: boom" in result.output
