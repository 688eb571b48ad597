"""Configuration for the papertray server.

Settings live in ``~/.papertray/config.yaml`` (override the location with
``PAPERTRAY_CONFIG``).  Every key is optional::

    host: 127.0.0.1
    port: 8080
    auth_token: change-me
    cors_origins: ["http://localhost:5173"]
    upload_dir: /var/spool/papertray
    max_upload_mb: 50
    initial_delay: 5
    poll_interval: 2
    retention_seconds: 3600
    lp_timeout: 120

Precedence (highest first):
    1. Explicit overrides (CLI flags)
    2. Environment variables (``PAPERTRAY_PORT``, ``PAPERTRAY_AUTH_TOKEN``, ...)
    3. Config file
    4. Built-in defaults
"""

from __future__ import annotations

import logging
import os
import stat
import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from papertray import parse_float_env, parse_int_env
from papertray.scheduler import DEFAULT_INITIAL_DELAY, DEFAULT_POLL_INTERVAL, DEFAULT_RETENTION_SECONDS
from papertray.storage import DEFAULT_MAX_UPLOAD_BYTES, DEFAULT_UPLOAD_DIR

logger = logging.getLogger(__name__)

_ENV_PREFIX = "PAPERTRAY_"
_MB = 1024 * 1024


class ConfigError(ValueError):
    """Raised when a configuration value is unusable."""


@dataclass
class PapertrayConfig:
    """Effective server configuration."""

    host: str = "127.0.0.1"
    port: int = 8080
    auth_token: str | None = None
    cors_origins: list[str] = field(default_factory=list)
    upload_dir: str = DEFAULT_UPLOAD_DIR
    max_upload_mb: int = DEFAULT_MAX_UPLOAD_BYTES // _MB
    initial_delay: float = DEFAULT_INITIAL_DELAY
    poll_interval: float = DEFAULT_POLL_INTERVAL
    retention_seconds: float = DEFAULT_RETENTION_SECONDS
    lp_path: str = "lp"
    lpstat_path: str = "lpstat"
    lp_timeout: float = 120.0

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ConfigError(f"port must be between 1 and 65535, got {self.port}")
        if self.max_upload_mb <= 0:
            raise ConfigError("max_upload_mb must be positive")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive")
        if self.initial_delay < 0 or self.retention_seconds < 0 or self.lp_timeout <= 0:
            raise ConfigError("initial_delay and retention_seconds must be >= 0, lp_timeout > 0")

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * _MB

    def to_dict(self, *, reveal_secrets: bool = False) -> dict[str, Any]:
        data = asdict(self)
        if data["auth_token"] and not reveal_secrets:
            data["auth_token"] = "***"
        return data


_FIELD_TYPES: dict[str, str] = {
    "host": "str",
    "port": "int",
    "auth_token": "str",
    "cors_origins": "list",
    "upload_dir": "str",
    "max_upload_mb": "int",
    "initial_delay": "float",
    "poll_interval": "float",
    "retention_seconds": "float",
    "lp_path": "str",
    "lpstat_path": "str",
    "lp_timeout": "float",
}


def get_config_path() -> Path:
    """Return ``$PAPERTRAY_CONFIG`` or ``~/.papertray/config.yaml``."""
    override = os.environ.get("PAPERTRAY_CONFIG", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".papertray" / "config.yaml"


def _warn_if_world_readable(path: Path) -> None:
    if sys.platform == "win32":
        return
    try:
        mode = path.stat().st_mode
    except OSError:
        return
    if mode & (stat.S_IRGRP | stat.S_IROTH):
        logger.warning(
            "Config file %s is readable by other users (mode %04o); it may hold an auth token. Run: chmod 600 %s",
            path,
            stat.S_IMODE(mode),
            path,
        )


def _read_config_file(path: Path) -> dict[str, Any]:
    """Parse the YAML file.  A missing file is an empty config; a broken one is an error."""
    if not path.is_file():
        return {}
    _warn_if_world_readable(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {path} has invalid YAML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")

    for key in sorted(set(data) - set(_FIELD_TYPES)):
        logger.warning(
            "Config file %s contains unknown key %r (expected one of: %s)",
            path,
            key,
            ", ".join(sorted(_FIELD_TYPES)),
        )
    return {k: v for k, v in data.items() if k in _FIELD_TYPES}


def _coerce(key: str, value: Any) -> Any:
    kind = _FIELD_TYPES[key]
    if value is None:
        return None
    try:
        if kind == "int":
            if isinstance(value, bool):
                raise TypeError
            return int(value)
        if kind == "float":
            if isinstance(value, bool):
                raise TypeError
            return float(value)
        if kind == "list":
            if isinstance(value, str):
                return [item.strip() for item in value.split(",") if item.strip()]
            return [str(item) for item in value]
    except (TypeError, ValueError):
        raise ConfigError(f"Config value {key!r} must be a {kind}, got {value!r}") from None
    return str(value)


def _from_env(key: str, current: Any) -> Any:
    name = _ENV_PREFIX + key.upper()
    kind = _FIELD_TYPES[key]
    if kind == "int":
        return parse_int_env(name, current)
    if kind == "float":
        return parse_float_env(name, current)
    raw = os.environ.get(name, "").strip()
    if not raw:
        return current
    return _coerce(key, raw)


def load_config(config_path: Path | None = None, **overrides: Any) -> PapertrayConfig:
    """Resolve the effective configuration.

    Keyword *overrides* whose value is ``None`` are ignored so CLI options
    can be passed straight through.

    Raises:
        ConfigError: If the file is malformed or a value is invalid.
    """
    defaults = {f.name: getattr(PapertrayConfig(), f.name) for f in fields(PapertrayConfig)}

    path = config_path or get_config_path()
    values = dict(defaults)
    for key, value in _read_config_file(path).items():
        values[key] = _coerce(key, value)

    for key in _FIELD_TYPES:
        values[key] = _from_env(key, values[key])

    for key, value in overrides.items():
        if key not in _FIELD_TYPES:
            raise ConfigError(f"Unknown config option: {key}")
        if value is not None:
            values[key] = _coerce(key, value)

    if values["auth_token"] is not None and not str(values["auth_token"]).strip():
        values["auth_token"] = None
    if values["upload_dir"]:
        values["upload_dir"] = str(Path(values["upload_dir"]).expanduser())

    logger.debug("Loaded configuration from %s", path)
    return PapertrayConfig(**values)
