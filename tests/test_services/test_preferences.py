"""Tests for tune_scrobbler.services.preferences."""

from tune_scrobbler.config.settings import Settings
from tune_scrobbler.services.preferences import Preferences


class TestPreferences:
    def test_defaults(self, tmp_config_dir):
        prefs = Preferences(path=tmp_config_dir / "config.toml")
        assert prefs.scrobbling_enabled is False
        assert prefs.session_key is None
        assert prefs.username is None
        assert prefs.first_run_complete is False
        # Loading a missing file writes the defaults.
        assert (tmp_config_dir / "config.toml").exists()

    def test_set_session_is_persisted(self, tmp_config_dir):
        path = tmp_config_dir / "config.toml"
        Preferences(path=path).set_session("SK", "alice")

        loaded = Settings.load(path)
        assert loaded.lastfm.session_key == "SK"
        assert loaded.lastfm.username == "alice"

    def test_scrobbling_flag_is_persisted(self, tmp_config_dir):
        path = tmp_config_dir / "config.toml"
        Preferences(path=path).set_scrobbling_enabled(True)
        assert Preferences(path=path).scrobbling_enabled is True

    def test_clear_session_disables_scrobbling(self, preferences):
        preferences.clear_session()
        assert preferences.session_key is None
        assert preferences.username is None
        assert preferences.scrobbling_enabled is False

    def test_first_run(self, tmp_config_dir):
        path = tmp_config_dir / "config.toml"
        Preferences(path=path).set_first_run_complete()
        assert Preferences(path=path).first_run_complete is True

    def test_reload_picks_up_other_writers(self, tmp_config_dir):
        path = tmp_config_dir / "config.toml"
        daemon = Preferences(path=path)
        Preferences(path=path).set_session("SK", "alice")

        assert daemon.session_key is None
        daemon.reload()
        assert daemon.session_key == "SK"
        assert daemon.settings.lastfm.username == "alice"

    def test_other_settings_survive_saves(self, tmp_config_dir):
        path = tmp_config_dir / "config.toml"
        settings = Settings()
        settings.lastfm.api_key = "KEY"
        settings.general.settle_delay = 2.5
        Preferences(settings, path).set_scrobbling_enabled(True)

        loaded = Settings.load(path)
        assert loaded.lastfm.api_key == "KEY"
        assert loaded.general.settle_delay == 2.5
