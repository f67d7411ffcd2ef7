"""Tests for tune_scrobbler.config.settings."""

import stat

from tune_scrobbler.config.settings import (
    GeneralSettings,
    LastFMSettings,
    PlayerSettings,
    Settings,
    _format_toml_value,
)


class TestDefaultValues:
    def test_defaults(self):
        s = Settings()
        assert s.general.log_level == "WARNING"
        assert s.general.settle_delay == 5.0
        assert s.general.first_run_complete is False
        assert s.lastfm.api_key == ""
        assert s.lastfm.session_key == ""
        assert s.lastfm.scrobbling_enabled is False
        assert s.lastfm.api_timeout == 15
        assert s.player.bus_name == ""

    def test_sections_are_independent(self):
        assert Settings().general is not Settings().general
        assert isinstance(Settings().lastfm, LastFMSettings)
        assert isinstance(Settings().player, PlayerSettings)
        assert isinstance(Settings().general, GeneralSettings)


class TestSaveLoadRoundTrip:
    def test_round_trip(self, tmp_config_dir):
        path = tmp_config_dir / "config.toml"

        original = Settings()
        original.general.settle_delay = 2.5
        original.lastfm.api_key = "key"
        original.lastfm.username = 'say "hi"'
        original.lastfm.scrobbling_enabled = True
        original.player.bus_name = "org.mpris.MediaPlayer2.spotify"
        original.save(path)

        loaded = Settings.load(path)
        assert loaded.general.settle_delay == 2.5
        assert loaded.lastfm.api_key == "key"
        assert loaded.lastfm.username == 'say "hi"'
        assert loaded.lastfm.scrobbling_enabled is True
        assert loaded.player.bus_name == "org.mpris.MediaPlayer2.spotify"
        # Other defaults preserved.
        assert loaded.lastfm.api_timeout == 15

    def test_save_creates_private_file(self, tmp_config_dir):
        path = tmp_config_dir / "new_config.toml"
        assert not path.exists()
        Settings().save(path)
        assert path.exists()
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


class TestPartialToml:
    def test_partial_preserves_defaults(self, tmp_config_dir):
        path = tmp_config_dir / "config.toml"
        path.write_text('[lastfm]\napi_timeout = 30\n')

        loaded = Settings.load(path)
        assert loaded.lastfm.api_timeout == 30
        assert loaded.lastfm.api_key == ""
        assert loaded.general.settle_delay == 5.0

    def test_unknown_keys_ignored(self, tmp_config_dir):
        path = tmp_config_dir / "config.toml"
        path.write_text('[general]\ncolour = "blue"\n\n[nonsense]\nx = 1\n')

        loaded = Settings.load(path)
        assert not hasattr(loaded.general, "colour")

    def test_missing_file_creates_default(self, tmp_config_dir):
        path = tmp_config_dir / "nonexistent.toml"
        loaded = Settings.load(path)
        assert loaded.general.log_level == "WARNING"
        assert path.exists()  # Default file should be created.


class TestFormatTomlValue:
    def test_values(self):
        assert _format_toml_value(True) == "true"
        assert _format_toml_value(15) == "15"
        assert _format_toml_value(2.5) == "2.5"
        assert _format_toml_value('a\\b"c') == '"a\\\\b\\"c"'
        assert _format_toml_value(["a", 1]) == '["a", 1]'
