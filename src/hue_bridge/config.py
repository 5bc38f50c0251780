"""Configuration loading for the Hue bridge client."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for older interpreters
    import tomli as tomllib  # type: ignore


CONFIG_ENV_PREFIX = "HUE_BRIDGE_"
CONFIG_VERSION = 1
MIN_SUPPORTED_CONFIG_VERSION = 1

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Config:
    """Client configuration.

    ``stream_connect_timeout`` bounds the DTLS handshake. A bridge whose
    entertainment group is not streaming never answers, so opening a stream
    fails after this many seconds instead of hanging.
    """

    host: Optional[str] = None
    username: Optional[str] = None
    client_key: Optional[str] = None
    http_timeout: float = 5.0
    stream_port: int = 2100
    stream_connect_timeout: float = 10.0
    log_format: str = "plain"
    log_level: str = "WARNING"
    http_log_level: Optional[str] = None
    stream_log_level: Optional[str] = None
    config_version: int = CONFIG_VERSION

    def __post_init__(self) -> None:
        _validate_config(self)

    def logging_dict(self) -> Dict[str, Any]:
        """Return a sanitized mapping suitable for structured logging."""

        return {
            "config_version": self.config_version,
            "host": self.host,
            "username": "***REDACTED***" if self.username else None,
            "client_key": "***REDACTED***" if self.client_key else None,
            "http_timeout": self.http_timeout,
            "stream_port": self.stream_port,
            "stream_connect_timeout": self.stream_connect_timeout,
            "log_format": self.log_format,
            "log_level": self.log_level,
            "http_log_level": self.http_log_level,
            "stream_log_level": self.stream_log_level,
        }

    @classmethod
    def from_sources(
        cls,
        overrides: Optional[Mapping[str, Any]] = None,
        config_path: Optional[Path] = None,
    ) -> "Config":
        """Load configuration from defaults, file, env, and overrides (in that order).

        The file is ``config_path`` or, when that is not given, the path named by
        ``HUE_BRIDGE_CONFIG``. ``overrides`` normally carries the command-line
        flags; keys whose value is ``None`` are skipped.
        """

        file_config = _load_file_config(
            _coerce_path(config_path)
            or _coerce_path(os.environ.get(f"{CONFIG_ENV_PREFIX}CONFIG"))
        )
        env_config = _load_env_config(CONFIG_ENV_PREFIX)

        config = cls()
        config = _apply_mapping(config, file_config)
        config = _apply_mapping(config, env_config)
        config = _apply_mapping(config, overrides or {})
        return config


def _validate_config(config: Config) -> None:
    _validate_version(config.config_version)
    _validate_range("http_timeout", config.http_timeout, 0.1, 300.0)
    _validate_range("stream_port", config.stream_port, 1, 65535)
    _validate_range("stream_connect_timeout", config.stream_connect_timeout, 0.1, 300.0)
    if config.log_format not in {"plain", "json"}:
        raise ValueError(f"log_format must be 'plain' or 'json'; got {config.log_format}.")
    for field_name, value in (
        ("log_level", config.log_level),
        ("http_log_level", config.http_log_level),
        ("stream_log_level", config.stream_log_level),
    ):
        _validate_log_level_value(value, field_name)


def _validate_version(version: int) -> None:
    if version < MIN_SUPPORTED_CONFIG_VERSION:
        raise ValueError(
            f"Config version {version} is too old; minimum supported is {MIN_SUPPORTED_CONFIG_VERSION}."
        )
    if version > CONFIG_VERSION:
        raise ValueError(
            f"Config version {version} is newer than supported ({CONFIG_VERSION}); please upgrade the client."
        )


def _validate_range(name: str, value: float, minimum: float, maximum: float) -> None:
    if value < minimum or value > maximum:
        raise ValueError(f"{name} must be between {minimum} and {maximum}; got {value}.")


def _validate_log_level_value(value: Optional[str], name: str) -> None:
    if value is None:
        return
    if value.upper() not in _LOG_LEVELS:
        raise ValueError(f"{name} must be one of {sorted(_LOG_LEVELS)}; got {value}.")


def _load_file_config(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("rb") as f:
        parsed = tomllib.load(f)
    if not isinstance(parsed, Mapping):
        raise ValueError("Configuration file must contain a TOML table.")
    return {k.replace("-", "_"): v for k, v in parsed.items()}


def _load_env_config(prefix: str) -> Dict[str, Any]:
    mapping: Dict[str, Any] = {}
    for field in Config.__dataclass_fields__:
        env_key = f"{prefix}{field}".upper()
        if env_key in os.environ:
            mapping[field] = os.environ[env_key]
    return mapping


def _apply_mapping(config: Config, overrides: Mapping[str, Any]) -> Config:
    data: MutableMapping[str, Any] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        if key not in Config.__dataclass_fields__:
            raise ValueError(f"Unknown configuration key: {key}")
        if key in {"stream_port", "config_version"}:
            data[key] = int(value)
        elif key in {"http_timeout", "stream_connect_timeout"}:
            data[key] = float(value)
        elif key in {"log_level", "http_log_level", "stream_log_level"}:
            data[key] = str(value).upper()
        elif key == "log_format":
            data[key] = str(value).lower()
        else:
            data[key] = str(value)
    return replace(config, **data)


def _coerce_path(value: Any) -> Optional[Path]:
    if value is None or value == "":
        return None
    return value if isinstance(value, Path) else Path(str(value)).expanduser()


def load_config(
    overrides: Optional[Mapping[str, Any]] = None, config_path: Optional[Path] = None
) -> Config:
    """Public helper used by entrypoints."""

    return Config.from_sources(overrides, config_path)
