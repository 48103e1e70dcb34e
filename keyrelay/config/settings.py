"""Configuration management for keyrelay."""

from typing import Optional
from urllib.parse import quote

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from keyrelay.utils.helpers import parse_size

DEFAULT_UPSTREAM_URL = "https://api.anthropic.com"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseSettings):
    """Configuration settings for keyrelay.

    Every field reads ``KEYRELAY_<FIELD>`` from the environment. The names used
    by existing deployments (``ANTHROPIC_BASE_URL``, ``RESIDENTIAL_PROXY_*``,
    ``BODY_LIMIT``, ``PORT``) are accepted as well.
    """

    model_config = SettingsConfigDict(
        env_prefix="KEYRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Upstream
    upstream_url: str = Field(
        default=DEFAULT_UPSTREAM_URL,
        description="Origin every request is forwarded to",
        validation_alias=AliasChoices("KEYRELAY_UPSTREAM_URL", "ANTHROPIC_BASE_URL"),
    )
    auth_token: Optional[str] = Field(
        default=None,
        description="Fallback credential when the request carries none",
        validation_alias=AliasChoices("KEYRELAY_AUTH_TOKEN", "ANTHROPIC_AUTH_TOKEN"),
    )
    connect_timeout: float = Field(
        default=10.0,
        description="Seconds allowed to establish the upstream connection"
    )
    upstream_timeout: Optional[float] = Field(
        default=600.0,
        description="Seconds allowed per upstream read/write (None = no limit)"
    )

    # Inbound
    body_limit: int = Field(
        default=25 * 1024 * 1024,
        description="Maximum inbound request body size (accepts '25mb' style values)",
        validation_alias=AliasChoices("KEYRELAY_BODY_LIMIT", "BODY_LIMIT"),
    )
    host: str = Field(
        default="0.0.0.0",
        description="Interface to listen on"
    )
    port: int = Field(
        default=3000,
        description="Port to listen on",
        validation_alias=AliasChoices("KEYRELAY_PORT", "PORT"),
    )

    # SOCKS5 tunnel
    socks_proxy_enabled: bool = Field(
        default=True,
        description="Tunnel upstream connections through a SOCKS5 proxy",
        validation_alias=AliasChoices("KEYRELAY_SOCKS_PROXY_ENABLED", "RESIDENTIAL_PROXY_ENABLED"),
    )
    socks_proxy_url: Optional[str] = Field(
        default=None,
        description="Full SOCKS5 URL; overrides the host/port/credential fields",
        validation_alias=AliasChoices("KEYRELAY_SOCKS_PROXY_URL", "RESIDENTIAL_PROXY_URL"),
    )
    socks_proxy_host: str = Field(
        default="127.0.0.1",
        validation_alias=AliasChoices("KEYRELAY_SOCKS_PROXY_HOST", "RESIDENTIAL_PROXY_HOST"),
    )
    socks_proxy_port: int = Field(
        default=1080,
        validation_alias=AliasChoices("KEYRELAY_SOCKS_PROXY_PORT", "RESIDENTIAL_PROXY_PORT"),
    )
    socks_proxy_username: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("KEYRELAY_SOCKS_PROXY_USERNAME", "RESIDENTIAL_PROXY_USERNAME"),
    )
    socks_proxy_password: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("KEYRELAY_SOCKS_PROXY_PASSWORD", "RESIDENTIAL_PROXY_PASSWORD"),
    )

    # Diagnostics
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_headers: bool = Field(
        default=False,
        description="Log inbound headers (credentials redacted) at DEBUG level"
    )

    @field_validator("body_limit", mode="before")
    @classmethod
    def _parse_body_limit(cls, value):
        return parse_size(value)

    @classmethod
    def load_from_file(cls, config_file: str) -> "Settings":
        """Load settings from a YAML config file.

        Args:
            config_file: Path to YAML config file

        Returns:
            Settings instance
        """
        import yaml

        with open(config_file, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {config_file}")
        return cls(**config_data)

    def require_upstream_url(self) -> str:
        """Get the upstream origin, failing if it is not configured.

        Returns:
            Upstream URL without a trailing slash

        Raises:
            ConfigurationError: If no upstream URL is configured
        """
        url = (self.upstream_url or "").strip().rstrip("/")
        if not url:
            raise ConfigurationError("Missing ANTHROPIC_BASE_URL environment variable.")
        return url

    def build_socks_proxy_url(self) -> Optional[str]:
        """Get the SOCKS5 proxy URL, or None when tunnelling is disabled."""
        if not self.socks_proxy_enabled:
            return None
        if self.socks_proxy_url:
            return self.socks_proxy_url

        userinfo = ""
        if self.socks_proxy_username:
            userinfo = quote(self.socks_proxy_username, safe="")
            if self.socks_proxy_password:
                userinfo += ":" + quote(self.socks_proxy_password, safe="")
            userinfo += "@"
        return f"socks5://{userinfo}{self.socks_proxy_host}:{self.socks_proxy_port}"
