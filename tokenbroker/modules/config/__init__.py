"""
Config Module - Black Box Interface

Purpose: Process-level settings for storage and logging
Interface: get_config(), get(), set(), redis_url()
Hidden: Environment variable names, port parsing, defaults

Engine and API tunables live in tokenbroker/config/provider.py; this module
only covers what the host needs before any module is built.
"""

import os
from typing import Any, Dict, Optional

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Keys every ConfigModule instance guarantees to hold
REQUIRED_CONFIG_KEYS = {
    "redis_host": "Redis server hostname",
    "redis_port": "Redis server port number",
    "redis_db": "Redis database number",
    "redis_namespace": "Prefix for every key written by the broker",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
}

OPTIONAL_CONFIG_KEYS = {
    "redis_url": {
        "description": "Full Redis URL; overrides host, port and db when set",
        "default": None,
    },
    "redis_password": {
        "description": "Redis authentication password",
        "default": None,
    },
    "seal_key": {
        "description": "Secret used to encrypt stored connections and tokens",
        "default": None,
    },
}


def _parse_port(value: str) -> int:
    """Accept a bare port or the tcp://host:port form Kubernetes injects."""
    if value.startswith("tcp://"):
        value = value.rsplit(":", 1)[-1]
    return int(value)


class ConfigModule:
    """Settings loaded once from the environment."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        env = os.environ if environ is None else environ
        self._config = self._load(env)
        self._validate()

    @staticmethod
    def _load(env) -> Dict[str, Any]:
        return {
            "redis_url": env.get("REDIS_URL") or None,
            "redis_host": env.get("REDIS_HOST", "localhost"),
            "redis_port": _parse_port(env.get("REDIS_PORT", "6379")),
            "redis_db": int(env.get("REDIS_DB", "0")),
            "redis_password": env.get("REDIS_PASSWORD") or None,
            "redis_namespace": env.get("REDIS_NAMESPACE", "tokenbroker"),
            "seal_key": env.get("STORAGE_SEAL_KEY") or None,
            "log_level": env.get("LOG_LEVEL", "INFO").upper(),
        }

    def _validate(self) -> None:
        missing = [key for key in REQUIRED_CONFIG_KEYS if self._config.get(key) in (None, "")]
        if missing:
            raise ValueError(f"Missing required configuration keys: {', '.join(missing)}")

        if self._config["log_level"] not in LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {self._config['log_level']}"
            )

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value."""
        self._config[key] = value

    def get_all(self) -> Dict[str, Any]:
        """Copy of every value. The seal key is included; do not log it."""
        return dict(self._config)

    def redis_url(self) -> str:
        """Redis URL without the password (passed separately)."""
        if self._config["redis_url"]:
            return self._config["redis_url"]
        return f"redis://{self._config['redis_host']}:{self._config['redis_port']}/{self._config['redis_db']}"

    @staticmethod
    def get_config_schema() -> Dict[str, Any]:
        """Required and optional keys with their descriptions."""
        return {
            "required": dict(REQUIRED_CONFIG_KEYS),
            "optional": dict(OPTIONAL_CONFIG_KEYS),
        }


_instance = None


def get_config() -> ConfigModule:
    """Get the configuration module singleton."""
    global _instance
    if _instance is None:
        _instance = ConfigModule()
    return _instance


__all__ = ["get_config", "ConfigModule"]
