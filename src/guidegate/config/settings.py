"""Deployment settings for the guidegate admission service."""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import yaml

from . import const

__all__ = ["ConfigError", "GuideGateSettings", "load_settings", "settings_from_mapping"]


class ConfigError(RuntimeError):
    """Raised when the deployment configuration is missing or malformed."""


@dataclass(slots=True)
class GuideGateSettings:
    secret: str
    code_strategy: str = const.DEFAULT_CODE_STRATEGY
    db_path: str = const.DEFAULT_DB_PATH
    key_prefix: str = const.DEVICE_KEY_PREFIX
    default_max_devices: int = const.DEFAULT_MAX_DEVICES
    session_duration_seconds: int = const.DEFAULT_SESSION_DURATION_SECONDS
    retention_days: int = const.DEFAULT_RETENTION_DAYS
    maintenance_token: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.secret:
            raise ConfigError("secret is required (set GUIDEGATE_SECRET or 'secret' in the config file)")
        if int(self.default_max_devices) < 1:
            raise ConfigError("default_max_devices must be >= 1")
        if int(self.session_duration_seconds) <= 0:
            raise ConfigError("session_duration_seconds must be positive")
        if int(self.retention_days) <= 0:
            raise ConfigError("retention_days must be positive")

    @property
    def session_duration(self) -> timedelta:
        return timedelta(seconds=int(self.session_duration_seconds))

    @property
    def retention_ms(self) -> int:
        return int(self.retention_days) * 24 * 60 * 60 * 1000

    def as_dict(self, *, redact: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if redact:
            data["secret"] = "***"
            if data.get("maintenance_token"):
                data["maintenance_token"] = "***"
        return data


_ENV_OVERRIDES: Mapping[str, str] = {
    "secret": "GUIDEGATE_SECRET",
    "code_strategy": "GUIDEGATE_CODE_STRATEGY",
    "db_path": "GUIDEGATE_DB_PATH",
    "maintenance_token": "GUIDEGATE_TOKEN",
    "log_level": "GUIDEGATE_LOG_LEVEL",
}

_INT_FIELDS = {"default_max_devices", "session_duration_seconds", "retention_days"}


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"config file is not valid YAML: {path}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file must contain a mapping: {path}")
    return data


def settings_from_mapping(data: Mapping[str, Any]) -> GuideGateSettings:
    known = {f.name for f in fields(GuideGateSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown settings: {', '.join(unknown)}")
    values: dict[str, Any] = {}
    for key, value in data.items():
        if key in _INT_FIELDS:
            try:
                value = int(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"{key} must be an integer") from exc
        values[key] = value
    values.setdefault("secret", "")
    return GuideGateSettings(**values)


def load_settings(path: str | Path | None = None) -> GuideGateSettings:
    """Load settings from YAML (optional) and apply ``GUIDEGATE_*`` env overrides."""

    source = path or os.getenv("GUIDEGATE_CONFIG")
    data: dict[str, Any] = _read_yaml(Path(source)) if source else {}
    for key, env_name in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data[key] = value
    return settings_from_mapping(data)
