"""Configuration system for oidc-session using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.oidc_session] section (project-level)
3. ./oidc_session.toml (project-level, explicit)
4. File named by OIDC_SESSION_CONFIG_FILE
5. Environment variables (highest priority)

Environment variables use the OIDC_SESSION__ prefix.
Example: OIDC_SESSION__CLIENT_ID, OIDC_SESSION__RETURN_URI
"""

from __future__ import annotations

import logging
import os
import tomllib

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .auth.destination import ReturnDestination, parse_return_destination
from .exceptions import ConfigurationError


logger = logging.getLogger("oidc_session")


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    explicit = Path("oidc_session.toml")
    if explicit.exists():
        files.append(explicit)

    env_config = os.environ.get("OIDC_SESSION_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", config_file, exc)
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("oidc_session", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {
    "client_secret",
    "app_secret",
    "redis_url",
}

_REDACTED = "********"


class OIDCSettings(BaseSettings):
    """OAuth2 / OpenID Connect session configuration.

    Environment prefix: OIDC_SESSION__
    Example: OIDC_SESSION__CLIENT_ID=your-client-id
    Example: OIDC_SESSION__PROVIDER=google

    TOML section: [tool.oidc_session]
    """

    model_config = SettingsConfigDict(
        env_prefix="OIDC_SESSION__",
        extra="ignore",
    )

    # Provider selection
    provider: Literal["google", "oidc"] = Field(
        default="google",
        description="Identity provider preset: google or a generic oidc issuer",
    )

    # Client credentials; app_id/app_secret is the legacy spelling
    client_id: str = Field(default="", description="OAuth2 client ID")
    client_secret: str = Field(default="", description="OAuth2 client secret")
    app_id: str | None = Field(default=None, description="Legacy alias of client_id")
    app_secret: str | None = Field(default=None, description="Legacy alias of client_secret")

    scopes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["openid", "profile", "email"],
        description="Requested scopes (list, or space/comma separated string)",
    )
    access_type: str = Field(
        default="online",
        description="online, or offline to receive refresh tokens",
    )
    return_uri: str | dict[str, Any] | None = Field(
        default=None,
        description=(
            "OAuth redirect_uri and post-login landing page: an absolute URL, "
            "an endpoint name, or {endpoint, args|params}"
        ),
    )

    # Endpoint URLs (discovered from issuer_url when empty)
    issuer_url: str = Field(default="", description="OIDC issuer for discovery")
    authorize_url: str = Field(default="", description="Authorization endpoint")
    token_url: str = Field(default="", description="Token endpoint")
    userinfo_url: str = Field(default="", description="Userinfo endpoint")
    jwks_url: str = Field(default="", description="JWKS endpoint for ID tokens")

    clear_all_with_logout: bool = Field(
        default=True,
        description="Clear the OAuth session record when the user logs out",
    )
    expiry_margin_seconds: int = Field(
        default=30,
        ge=0,
        description="Seconds before expires_in at which a token counts as expired",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for identity provider HTTP calls",
    )

    # Session storage
    session_backend: Literal["memory", "redis", "cookie"] = Field(
        default="memory",
        description="Session record backend: memory, redis, or cookie",
    )
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_prefix: str = Field(default="oidc_session")
    session_ttl_seconds: int | None = Field(
        default=86400,
        description="Sliding TTL of memory and Redis session records (None to disable)",
    )
    cookie_section: str = Field(
        default="oidc",
        description="request.session key holding the record (cookie backend)",
    )
    session_id_key: str = Field(
        default="oidc_sid",
        description="request.session key holding the session id (memory/redis)",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    def __init__(self, **data: Any) -> None:
        # environment variables outrank every TOML layer
        toml_config = {
            key: value
            for key, value in _load_toml_config().items()
            if f"OIDC_SESSION__{key.upper()}" not in os.environ
        }
        merged = _deep_merge(toml_config, data)
        super().__init__(**merged)

    @field_validator("scopes", mode="before")
    @classmethod
    def _parse_scopes(cls, v: Any) -> list[str]:
        """Accept a space or comma separated string (from env var) or a list."""
        if isinstance(v, str):
            v = [s.strip() for s in v.replace(",", " ").split() if s.strip()]
        if not isinstance(v, (list, tuple)):
            msg = f"Permission scopes must be a list, got {type(v).__name__}"
            raise ValueError(msg)
        return list(v)

    @field_validator("access_type")
    @classmethod
    def _check_access_type(cls, v: str) -> str:
        allowed = ("online", "offline")
        if v not in allowed:
            msg = f"Key access_type is expected to be one of [{', '.join(allowed)}], but '{v}' was given."
            raise ValueError(msg)
        return v

    @field_validator("return_uri")
    @classmethod
    def _check_return_uri(cls, v: Any) -> Any:
        if v is not None:
            parse_return_destination(v)
        return v

    @model_validator(mode="after")
    def _check_credentials(self) -> OIDCSettings:
        legacy = self.app_id is not None or self.app_secret is not None
        modern = bool(self.client_id or self.client_secret)
        if legacy and modern:
            msg = (
                "Use only one syntax, either app_id and app_secret "
                "or client_id and client_secret, do not combine them"
            )
            raise ValueError(msg)
        if legacy:
            self.client_id = self.app_id or ""
            self.client_secret = self.app_secret or ""
            self.app_id = None
            self.app_secret = None

        if not self.client_id:
            msg = "client_id is required"
            raise ValueError(msg)
        if self.provider == "oidc" and not self.issuer_url and not (
            self.authorize_url and self.token_url
        ):
            msg = "oidc provider requires issuer_url, or authorize_url and token_url"
            raise ValueError(msg)
        return self

    @property
    def return_destination(self) -> ReturnDestination | None:
        """The parsed return destination, or None when not configured."""
        if self.return_uri is None:
            return None
        return parse_return_destination(self.return_uri)

    def show(self) -> str:
        """Format settings as a readable table with secrets redacted."""
        lines = ["oidc-session Configuration", "=" * 60, ""]
        data = self.model_dump(exclude=_SENSITIVE_FIELDS)
        for field_name, field_value in data.items():
            value_str = str(field_value)
            if len(value_str) > 50:
                value_str = value_str[:47] + "..."
            lines.append(f"  {field_name:22} = {value_str}")
        lines.extend(f"  {name:22} = {_REDACTED}" for name in sorted(_SENSITIVE_FIELDS))
        return "\n".join(lines)


def load_settings(**overrides: Any) -> OIDCSettings:
    """Build settings from all sources, failing with ConfigurationError.

    Parameters
    ----------
    **overrides : Any
        Explicit values taking precedence over TOML files.

    Raises
    ------
    ConfigurationError
        If any setting is invalid.
    """
    try:
        return OIDCSettings(**overrides)
    except ValidationError as exc:
        errors = exc.errors()
        setting = ".".join(str(p) for p in errors[0]["loc"]) if errors and errors[0]["loc"] else None
        msg = f"Invalid oidc-session configuration: {exc}"
        raise ConfigurationError(msg, setting=setting) from exc


@lru_cache(maxsize=1)
def get_settings() -> OIDCSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return load_settings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()
