import os
from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import yaml
from rich.theme import Theme as RichTheme

from planwatch.logs import LEVELS
from planwatch.runtime.exceptions import ConfigError

CONFIG_ENV = "PLANWATCH_CONFIG"

DEFAULT_STYLES: Dict[str, str] = {
    "title": "#FFFDF5 on #7571F9",
    "subtitle": "#FFFDF5 on #514DC1",
    "comment": "grey50",
    "header": "bold #7571F9",
    "progress": "#04B575",
    "info": "cyan",
    "warning": "yellow",
    "error": "bold #ED567A",
    "data": "green",
}

DEFAULT_GLYPHS: Dict[str, str] = {
    "start": "🕛",
    "complete": "✅",
    "error": "❌",
    "unknown": "❓",
}

LOG_FORMATS = ("human", "json")


@dataclass(frozen=True)
class Theme:
    """Styles and status glyphs, built once at startup and handed to the renderers."""

    styles: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_STYLES)))
    glyphs: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_GLYPHS)))

    def glyph(self, status: str) -> str:
        return self.glyphs.get(status, self.glyphs.get("unknown", "?"))

    def to_rich(self) -> RichTheme:
        return RichTheme(dict(self.styles))


@dataclass(frozen=True)
class Settings:
    tick_interval: float = 1.0
    log_level: Optional[str] = None
    log_path: Optional[str] = None
    log_format: str = "human"
    tee_path: Optional[str] = None
    csv_path: Optional[str] = None
    plain: bool = False
    theme: Mapping[str, str] = field(default_factory=dict)
    glyphs: Mapping[str, str] = field(default_factory=dict)
    locale: str = "en"

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Returns a copy with every override that is not None applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def build_theme(self) -> Theme:
        return Theme(
            styles=MappingProxyType({**DEFAULT_STYLES, **self.theme}),
            glyphs=MappingProxyType({**DEFAULT_GLYPHS, **self.glyphs}),
        )


def _check_str_map(name: str, value: Any):
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ConfigError(f"'{name}' must map names to strings")


def settings_from_dict(data: Any) -> Settings:
    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    tick = data.get("tick_interval", 1.0)
    if isinstance(tick, bool) or not isinstance(tick, (int, float)) or tick <= 0:
        raise ConfigError("'tick_interval' must be a positive number of seconds")

    level = data.get("log_level")
    if level is not None and level not in LEVELS:
        raise ConfigError(
            f"'log_level' must be one of {', '.join(LEVELS)}, got '{level}'"
        )

    if data.get("log_format", "human") not in LOG_FORMATS:
        raise ConfigError(f"'log_format' must be one of {', '.join(LOG_FORMATS)}")

    if not isinstance(data.get("locale", "en"), str):
        raise ConfigError("'locale' must be a string")

    for name in ("theme", "glyphs"):
        if name in data:
            _check_str_map(name, data[name])

    return Settings(**{**data, "tick_interval": float(tick)})


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Loads settings from a YAML file. Without an explicit path the file named
    by the PLANWATCH_CONFIG environment variable is used, if any.
    """
    path = path or os.environ.get(CONFIG_ENV)
    if not path:
        return Settings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e

    return settings_from_dict(data)
