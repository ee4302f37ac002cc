"""YAML configuration loader with dataclass mapping."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ApiConfig:
    base_url: str = "http://localhost:3000"
    request_timeout: float = 10.0


@dataclass
class ProfileConfig:
    label: str = ""
    cam_id: str = ""
    token: str = ""
    default_lat: float = 0.0
    default_lng: float = 0.0
    radius: float = 0.0     # meters, 0 disables proximity alerts

    @property
    def is_ready(self) -> bool:
        return bool(self.cam_id and self.token)


def _offensive_profile() -> ProfileConfig:
    return ProfileConfig(label="Offensive", default_lat=14.286451,
                         default_lng=101.171298, radius=0.0)


def _defensive_profile() -> ProfileConfig:
    return ProfileConfig(label="Defensive", default_lat=14.297567,
                         default_lng=101.166279, radius=1500.0)


@dataclass
class ProfilesConfig:
    offensive: ProfileConfig = field(default_factory=_offensive_profile)
    defensive: ProfileConfig = field(default_factory=_defensive_profile)


@dataclass
class StreamConfig:
    enabled: bool = True
    event_template: str = "{cam_id}"
    reconnect_delay: float = 2.0
    max_reconnect_delay: float = 60.0


@dataclass
class ClusteringConfig:
    single_zoom: float = 15.0
    near_zoom: float = 13.0
    mid_zoom: float = 11.0
    near_tolerance: float = 0.002   # degrees
    mid_tolerance: float = 0.004
    far_tolerance: float = 0.01
    stable_order: bool = False
    default_zoom: float = 17.0


@dataclass
class DefenceConfig:
    ring_steps: int = 64
    persist: bool = False


@dataclass
class SearchConfig:
    base_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    access_token: str = ""
    debounce: float = 0.35
    suggestion_limit: int = 5
    min_query_length: int = 3


@dataclass
class PipelineConfig:
    registry_policy: str = "received"   # "received" or "timestamp"


@dataclass
class NoticesConfig:
    search_ttl: float = 3.5
    clear_ttl: float = 3.5
    defence_ttl: float = 4.0


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class LoggingConfig:
    log_dir: str = "data/logs"


@dataclass
class AppConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    profiles: ProfilesConfig = field(default_factory=ProfilesConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    defence: DefenceConfig = field(default_factory=DefenceConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    notices: NoticesConfig = field(default_factory=NoticesConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def profile(self, role: str) -> ProfileConfig:
        """Return the camera profile for a feed role ("offensive"/"defensive")."""
        if role not in ("offensive", "defensive"):
            raise KeyError(role)
        return getattr(self.profiles, role)


def _apply_dict(dc: object, data: dict) -> None:
    """Apply dictionary values onto a dataclass instance, ignoring unknown keys."""
    for key, value in data.items():
        if hasattr(dc, key):
            if isinstance(value, str):
                value = value.strip()
            setattr(dc, key, value)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a YAML file, falling back to defaults."""
    config = AppConfig()

    if path is None:
        path = os.environ.get("CONFIG_PATH", "config/default.yaml")

    path = Path(path)
    if path.exists():
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}

        section_map = {
            "api": config.api,
            "stream": config.stream,
            "clustering": config.clustering,
            "defence": config.defence,
            "search": config.search,
            "pipeline": config.pipeline,
            "notices": config.notices,
            "web": config.web,
            "logging": config.logging,
        }

        for section_name, dc_instance in section_map.items():
            if section_name in raw and isinstance(raw[section_name], dict):
                _apply_dict(dc_instance, raw[section_name])

        profiles = raw.get("profiles")
        if isinstance(profiles, dict):
            for role in ("offensive", "defensive"):
                if isinstance(profiles.get(role), dict):
                    _apply_dict(config.profile(role), profiles[role])

    # Environment variable overrides
    env_map = {
        "API_BASE_URL": (config.api, "base_url"),
        "OFFENSIVE_CAM_ID": (config.profiles.offensive, "cam_id"),
        "OFFENSIVE_TOKEN": (config.profiles.offensive, "token"),
        "DEFENSIVE_CAM_ID": (config.profiles.defensive, "cam_id"),
        "DEFENSIVE_TOKEN": (config.profiles.defensive, "token"),
        "MAPBOX_TOKEN": (config.search, "access_token"),
        "WEB_HOST": (config.web, "host"),
    }
    for env_name, (section, key) in env_map.items():
        value = os.environ.get(env_name, "").strip()
        if value:
            setattr(section, key, value)

    env_port = os.environ.get("WEB_PORT")
    if env_port:
        config.web.port = int(env_port)

    return config


def save_config_values(data: dict, path: str | Path | None = None) -> None:
    """Update key/value pairs in the YAML config file, preserving all comments.

    Keys are matched by name anywhere in the file, so only keys that are unique
    across sections (e.g. ``default_lat`` under a single profile) should be
    written this way. Use ``section`` prefixes in ``data`` keys
    (``"defensive.radius"``) to restrict a match to the block that follows the
    named section header.
    """
    if path is None:
        path = os.environ.get("CONFIG_PATH", "config/default.yaml")
    path = Path(path)
    if not path.exists():
        return
    text = path.read_text()
    for key, value in data.items():
        section, _, name = key.rpartition(".")
        escaped = re.escape(name)
        if isinstance(value, bool):
            val_str = "true" if value else "false"
            pattern, repl = rf'(\b{escaped}:\s*)(true|false)', rf'\g<1>{val_str}'
        elif isinstance(value, str):
            pattern, repl = rf'(\b{escaped}:\s*)"[^"]*"', rf'\g<1>"{value}"'
        else:
            pattern, repl = rf'(\b{escaped}:\s*)-?[\d.]+', rf'\g<1>{value}'

        if section:
            header = re.search(rf'^(\s*){re.escape(section)}:\s*$', text, re.MULTILINE)
            if header is None:
                continue
            start = header.end()
            text = text[:start] + re.sub(pattern, repl, text[start:], count=1)
        else:
            text = re.sub(pattern, repl, text)
    path.write_text(text)
