"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass
from typing import List, Protocol


@dataclass
class APIConfig:
    """API configuration."""
    port: int
    host: str
    debug: bool


@dataclass
class AuthConfig:
    """Caller authentication configuration."""
    require_auth: bool
    api_keys: List[str]


@dataclass
class EngineConfig:
    """Token lifecycle configuration."""
    reconcile_interval: float
    request_timeout: float
    default_token_ttl: int
    probe_token_ttl: int


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...

    def get_auth_config(self) -> AuthConfig:
        """Get authentication configuration."""
        ...

    def get_engine_config(self) -> EngineConfig:
        """Get token lifecycle configuration."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        return APIConfig(
            port=int(os.getenv("API_PORT", "8080")),
            host=os.getenv("API_HOST", "0.0.0.0"),
            debug=os.getenv("API_DEBUG", "false").lower() == "true",
        )

    def get_auth_config(self) -> AuthConfig:
        """Get authentication configuration from environment variables."""
        # API keys are required - no default for security
        api_keys_env = os.getenv("API_KEYS")
        if not api_keys_env:
            raise ValueError(
                "API_KEYS environment variable is required (format: key or service:key). "
                "Example: admin:your-generated-key"
            )

        return AuthConfig(
            require_auth=os.getenv("REQUIRE_AUTH", "true").lower() == "true",
            api_keys=[key.strip() for key in api_keys_env.split(",") if key.strip()],
        )

    def get_engine_config(self) -> EngineConfig:
        """Get token lifecycle configuration from environment variables."""
        config = EngineConfig(
            reconcile_interval=float(os.getenv("RECONCILE_INTERVAL", "60")),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),
            default_token_ttl=int(os.getenv("DEFAULT_TOKEN_TTL", "3600")),
            probe_token_ttl=int(os.getenv("PROBE_TOKEN_TTL", "60")),
        )
        if config.reconcile_interval <= 0 or config.request_timeout <= 0:
            raise ValueError("RECONCILE_INTERVAL and REQUEST_TIMEOUT must be positive")
        if config.default_token_ttl <= 0 or config.probe_token_ttl <= 0:
            raise ValueError("DEFAULT_TOKEN_TTL and PROBE_TOKEN_TTL must be positive")
        return config
