"""Configuration module — frozen dataclass loaded from YAML, env vars and CLI args."""

import logging
import os
from dataclasses import dataclass, fields, replace

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    # server
    host: str = "127.0.0.1"
    port: int = 0
    log_file: str = ""
    max_request_line: int = 8192
    # client
    server_address: str = ""
    poll_interval: float = 0.25
    request_timeout: float = 5.0
    max_retries: int = 5
    retry_base_delay: float = 0.5
    retry_max_delay: float = 10.0

    @property
    def timeout(self) -> float | None:
        """HTTP timeout in seconds, or None when disabled (0)."""
        return self.request_timeout if self.request_timeout > 0 else None


ENV_VARS = {
    "host": "CHAT_HOST",
    "port": "CHAT_PORT",
    "log_file": "CHAT_LOG_FILE",
    "max_request_line": "CHAT_MAX_REQUEST_LINE",
    "server_address": "CHAT_SERVER",
    "poll_interval": "CHAT_POLL_INTERVAL",
    "request_timeout": "CHAT_REQUEST_TIMEOUT",
    "max_retries": "CHAT_MAX_RETRIES",
    "retry_base_delay": "CHAT_RETRY_BASE_DELAY",
    "retry_max_delay": "CHAT_RETRY_MAX_DELAY",
}

_TYPES = {f.name: f.type for f in fields(Config)}
_CASTS = {"str": str, "int": int, "float": float}


def _coerce(name: str, value) -> object:
    """Cast a raw YAML/env value to the type declared on Config."""
    declared = _TYPES[name]
    cast = _CASTS[declared if isinstance(declared, str) else declared.__name__]
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value for {name}: {value!r}") from exc


def load_yaml_config(path: str | None) -> dict:
    """Load overrides from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    unknown = sorted(set(data) - set(_TYPES))
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", path, ", ".join(unknown))
    logger.info("Loaded YAML config from %s", path)
    return {k: v for k, v in data.items() if k in _TYPES}


def load_config(yaml_path: str | None = None, overrides: dict | None = None,
                environ=None) -> Config:
    """Build Config from defaults <- YAML file <- env vars <- overrides (highest priority).

    Overrides with a value of None are ignored so argparse namespaces can be
    passed through unfiltered.
    """
    if environ is None:
        environ = os.environ

    kwargs: dict = {}
    for name, value in load_yaml_config(yaml_path).items():
        kwargs[name] = _coerce(name, value)

    for name, var in ENV_VARS.items():
        if var in environ:
            kwargs[name] = _coerce(name, environ[var])

    for name, value in (overrides or {}).items():
        if value is not None and name in _TYPES:
            kwargs[name] = _coerce(name, value)

    return replace(Config(), **kwargs)
