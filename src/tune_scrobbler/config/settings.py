"""Settings management using TOML configuration."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Self

from tune_scrobbler.config.paths import CONFIG_FILE


@dataclass
class GeneralSettings:
    log_level: str = "WARNING"
    # Seconds to wait after a player event before reading the track, so a
    # player that is quitting or relaunching has settled.
    settle_delay: float = 5.0
    first_run_complete: bool = False


@dataclass
class LastFMSettings:
    api_key: str = ""
    api_secret: str = ""
    session_key: str = ""
    username: str = ""
    scrobbling_enabled: bool = False
    api_timeout: int = 15


@dataclass
class PlayerSettings:
    # MPRIS bus name to follow, e.g. "org.mpris.MediaPlayer2.spotify".
    # Empty means the first MPRIS player found on the session bus.
    bus_name: str = ""


SECTION_MAP: dict[str, type] = {
    "general": GeneralSettings,
    "lastfm": LastFMSettings,
    "player": PlayerSettings,
}


@dataclass
class Settings:
    general: GeneralSettings = field(default_factory=GeneralSettings)
    lastfm: LastFMSettings = field(default_factory=LastFMSettings)
    player: PlayerSettings = field(default_factory=PlayerSettings)

    @classmethod
    def load(cls, path: Path = CONFIG_FILE) -> Self:
        settings = cls()

        if not path.exists():
            settings._create_default(path)
            return settings

        with open(path, "rb") as f:
            data = tomllib.load(f)

        for section_name in SECTION_MAP:
            if section_name in data:
                section_data = data[section_name]
                section_instance = getattr(settings, section_name)
                for f_info in fields(section_instance):
                    if f_info.name in section_data:
                        setattr(section_instance, f_info.name, section_data[f_info.name])

        return settings

    def save(self, path: Path = CONFIG_FILE) -> None:
        import os

        from tune_scrobbler.config.paths import SECURE_FILE_MODE

        path.parent.mkdir(parents=True, exist_ok=True)
        lines: list[str] = []

        for section_name in SECTION_MAP:
            section = getattr(self, section_name)
            lines.append(f"[{section_name}]")
            for f_info in fields(section):
                value = getattr(section, f_info.name)
                lines.append(f"{f_info.name} = {_format_toml_value(value)}")
            lines.append("")

        path.write_text("\n".join(lines))
        os.chmod(path, SECURE_FILE_MODE)

    def _create_default(self, path: Path) -> None:
        self.save(path)


def _format_toml_value(value: object) -> str:
    match value:
        case bool():
            return "true" if value else "false"
        case int():
            return str(value)
        case float():
            return repr(value)
        case str():
            escaped = value.replace("\\", "\\\\").replace('"', '\\"')
            return f'"{escaped}"'
        case list():
            items = ", ".join(_format_toml_value(v) for v in value)
            return f"[{items}]"
        case _:
            return repr(value)

