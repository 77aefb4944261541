"""
Configuration management using Pydantic Settings.

Two layers of configuration:
- Environment settings (server, logging, gateway timeouts) loaded from
  environment variables and the .env file, with sensible defaults.
- The provider configuration file (TOML or JSON) listing the upstream
  providers in priority order and the optional server API key.
"""

import json
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = ROOT_DIR / ".env"

# Load .env into environment for nested settings models
load_dotenv(ENV_FILE)


class ConfigError(Exception):
    """Raised when configuration is missing or malformed. Fatal at startup."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path is not None:
            return f"{self.path}: {self.message}"
        return self.message


# =============================================================================
# Environment settings
# =============================================================================

class AppSettings(BaseSettings):
    """Application-level configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="APP_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: Literal["development", "staging", "production"] = "development"
    app_name: str = "unigate"
    app_version: str = "1.0.0"
    app_debug: bool = False

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8080
    api_workers: int = 1

    # Provider configuration file (TOML or JSON)
    config_file: str = "config.toml"


class LogSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="LOG_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    level: str = "INFO"
    format: Literal["json", "text"] = "json"
    requests: bool = True


class GatewaySettings(BaseSettings):
    """Upstream communication and catalog refresh configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="GATEWAY_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    discovery_timeout_ms: int = Field(default=10000, gt=0)
    upstream_timeout_ms: int = Field(default=120000, gt=0)
    connect_timeout_ms: int = Field(default=10000, gt=0)
    refresh_interval_seconds: int = Field(default=0, ge=0)  # 0 disables periodic refresh
    max_connections: int = Field(default=100, gt=0)


class Settings(BaseSettings):
    """Main settings class that aggregates all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)

    # DOCS
    docs_enabled: bool = True
    dev_auto_reload: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# =============================================================================
# Provider configuration file
# =============================================================================

class ProviderConfig(BaseModel):
    """One upstream provider entry as written in the configuration file."""

    model_config = ConfigDict(extra="forbid")

    base_url: str
    api_key: str = ""
    name: Optional[str] = None
    models: Optional[List[str]] = None

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an absolute http(s) URL and strip trailing slashes once."""
        parsed = urlparse(v.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"base_url must be an http(s) URL, got {v!r}")
        return v.strip().rstrip("/")

    @field_validator("models")
    @classmethod
    def validate_models(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        for model_id in v:
            if not model_id:
                raise ValueError("static model ids must be non-empty strings")
        return v

    @property
    def display_name(self) -> str:
        """Provider identifier used in logs and as static `owned_by`."""
        return self.name or urlparse(self.base_url).netloc


class GatewayConfig(BaseModel):
    """Contents of the provider configuration file."""

    model_config = ConfigDict(extra="forbid")

    server_api_key: Optional[str] = None
    providers: List[ProviderConfig] = Field(default_factory=list)

    @field_validator("server_api_key")
    @classmethod
    def normalize_server_api_key(cls, v: Optional[str]) -> Optional[str]:
        """An empty key means authentication is disabled."""
        return v or None

    @property
    def auth_enabled(self) -> bool:
        return self.server_api_key is not None


def load_gateway_config(path: Optional[str | Path] = None) -> GatewayConfig:
    """
    Load and validate the provider configuration file.

    The format is selected by suffix: `.json` is parsed as JSON, anything
    else as TOML.

    Args:
        path: File to load. Defaults to APP_CONFIG_FILE.

    Returns:
        Validated GatewayConfig

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    config_path = Path(path or settings.app.config_file)

    try:
        raw = config_path.read_bytes()
    except OSError as e:
        raise ConfigError(f"cannot read configuration file: {e.strerror or e}", config_path) from e

    try:
        if config_path.suffix.lower() == ".json":
            data = json.loads(raw)
        else:
            data = tomllib.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        # json.JSONDecodeError and tomllib.TOMLDecodeError are ValueErrors
        raise ConfigError(f"cannot parse configuration file: {e}", config_path) from e

    if not isinstance(data, dict):
        raise ConfigError("configuration root must be a table/object", config_path)

    try:
        return GatewayConfig.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"invalid configuration: {problems}", config_path) from e
