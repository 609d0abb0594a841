"""Configuration management for SQL Proxy.

Handles TOML config files, environment variables, named connection
profiles, server settings and configuration precedence resolution.

Connection precedence (highest to lowest):
1. CLI flags (--host, --port, etc.)
2. --dsn flag (parsed into components)
3. Environment variables (DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD, DB_SSL)
4. Named profile (--profile or SQL_PROXY_PROFILE env var)
5. Built-in defaults
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, field_validator, model_validator

from sql_proxy.core.exceptions import ConfigError
from sql_proxy.core.models import ConnectionConfig

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "sql-proxy" / "config.toml"

PROFILE_ENV_VAR = "SQL_PROXY_PROFILE"

_DB_ENV_VARS: dict[str, str] = {
    "DB_HOST": "host",
    "DB_PORT": "port",
    "DB_NAME": "database",
    "DB_USER": "username",
    "DB_PASSWORD": "password",  # pragma: allowlist secret
    "DB_SSL": "ssl",
}

_CONNECTION_DEFAULTS: dict[str, Any] = {
    "host": "localhost",
    "port": 5432,
    "database": "tickets_db",
    "username": "postgres",
    "password": "postgres",  # pragma: allowlist secret
    "ssl": False,
    "connect_timeout": 10,
    "statement_timeout": None,
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_dsn(dsn: str) -> dict[str, Any]:
    """Supports postgresql:// and postgres:// schemes with query params."""
    parsed = urlparse(dsn)
    if parsed.scheme not in ("postgresql", "postgres"):
        msg = f"Invalid DSN scheme: '{parsed.scheme}'. Expected 'postgresql' or 'postgres'"
        raise ConfigError(msg)

    result: dict[str, Any] = {}
    if parsed.hostname:
        result["host"] = parsed.hostname
    if parsed.port:
        result["port"] = parsed.port
    if parsed.path and parsed.path.strip("/"):
        result["database"] = parsed.path.strip("/")
    if parsed.username:
        result["username"] = parsed.username
    if parsed.password:
        result["password"] = parsed.password
    query_params = parse_qs(parsed.query)
    if "sslmode" in query_params:
        result["ssl"] = query_params["sslmode"][0] not in ("disable", "allow", "prefer")
    if "connect_timeout" in query_params:
        result["connect_timeout"] = int(query_params["connect_timeout"][0])
    return result


class PgProfile(BaseModel):
    dsn: str | None = None
    host: str = "localhost"
    port: int = 5432
    database: str = "tickets_db"
    username: str = "postgres"
    password: str | None = None
    ssl: bool = False
    connect_timeout: int = 10
    statement_timeout: int | None = None

    @model_validator(mode="before")
    @classmethod
    def parse_dsn_into_components(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("dsn"):
            dsn_fields = parse_dsn(data["dsn"])
            for key, value in dsn_fields.items():
                if key not in data:
                    data[key] = value
        return data

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            msg = f"Invalid port: {v}. Must be 1-65535"
            raise ValueError(msg)
        return v


class ServerSettings(BaseModel):
    """Settings for ``sql-proxy serve`` and the FastAPI app."""

    host: str = "127.0.0.1"
    port: int = 3001
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    identifier_policy: str = "trusted"
    allowed_tables: list[str] | None = None
    allow_client_config: bool = True
    jwt_secret: str | None = None
    request_timeout: float | None = 30.0
    sentry_dsn: str | None = None
    json_logs: bool = False

    @field_validator("identifier_policy")
    @classmethod
    def validate_identifier_policy(cls, v: str) -> str:
        if v not in ("trusted", "strict"):
            msg = f"Invalid identifier_policy: '{v}'. Must be 'trusted' or 'strict'"
            raise ValueError(msg)
        return v


class AppConfig(BaseModel):
    default_profile: str | None = None
    server: ServerSettings = ServerSettings()
    profiles: dict[str, PgProfile] = {}


class ResolvedConfig(BaseModel):
    connection: ConnectionConfig
    active_profile: str | None = None
    sources: dict[str, str] = {}


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file.

    Returns default AppConfig if file doesn't exist.
    Raises ConfigError on malformed TOML or invalid config.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Malformed TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return AppConfig.model_validate(data)
    except Exception as e:
        msg = f"Invalid configuration in {config_path}: {e}"
        raise ConfigError(msg) from e


def _env_value(env_var: str, field_name: str, value: str) -> Any:
    if field_name == "port":
        try:
            return int(value)
        except ValueError:
            msg = f"Invalid {env_var} value: '{value}'. Must be an integer"
            raise ConfigError(msg) from None
    if field_name == "ssl":
        return value.strip().lower() in _TRUE_VALUES
    return value


def resolve_config(
    config: AppConfig,
    profile_name: str | None = None,
    dsn: str | None = None,
    **cli_overrides: Any,
) -> ResolvedConfig:
    """Resolve the connection configuration using the precedence chain.

    CLI > DSN > env > profile > built-in defaults.
    """
    sources: dict[str, str] = {}
    resolved: dict[str, Any] = dict(_CONNECTION_DEFAULTS)
    for key in resolved:
        sources[key] = "default"

    # Named profile
    effective_profile = profile_name or os.environ.get(PROFILE_ENV_VAR)
    if not effective_profile:
        effective_profile = config.default_profile

    if effective_profile:
        if effective_profile not in config.profiles:
            available = (
                ", ".join(sorted(config.profiles.keys())) if config.profiles else "none"
            )
            msg = f"Unknown profile: '{effective_profile}'. Available profiles: {available}"
            raise ConfigError(msg)
        profile = config.profiles[effective_profile]
        for key in profile.model_fields_set:
            if key in resolved:
                resolved[key] = getattr(profile, key)
                sources[key] = f"profile: {effective_profile}"

    # Environment variables
    for env_var, field_name in _DB_ENV_VARS.items():
        value = os.environ.get(env_var)
        if value is not None:
            resolved[field_name] = _env_value(env_var, field_name, value)
            sources[field_name] = f"env: {env_var}"

    # DSN flag
    if dsn:
        for key, value in parse_dsn(dsn).items():
            if key in resolved:
                resolved[key] = value
                sources[key] = "dsn"

    # CLI flags (highest priority)
    cli_to_field = {
        "host": "host",
        "port": "port",
        "database": "database",
        "user": "username",
        "password": "password",  # pragma: allowlist secret
        "ssl": "ssl",
        "statement_timeout": "statement_timeout",
    }
    for cli_name, field_name in cli_to_field.items():
        value = cli_overrides.get(cli_name)
        if value is not None:
            resolved[field_name] = value
            sources[field_name] = f"cli: --{cli_name}"

    if resolved["password"] is None:
        resolved["password"] = ""

    try:
        connection = ConnectionConfig(**resolved)
    except ValueError as e:
        raise ConfigError(f"Invalid connection configuration: {e}") from e

    return ResolvedConfig(
        connection=connection,
        active_profile=effective_profile,
        sources=sources,
    )


def resolve_server_settings(config: AppConfig, **cli_overrides: Any) -> ServerSettings:
    """Apply PORT, JWT_SECRET and SQL_PROXY_SENTRY_DSN plus CLI flags to server settings."""
    updates: dict[str, Any] = {}
    port = os.environ.get("PORT")
    if port is not None:
        updates["port"] = _env_value("PORT", "port", port)
    jwt_secret = os.environ.get("JWT_SECRET")
    if jwt_secret:
        updates["jwt_secret"] = jwt_secret
    sentry_dsn = os.environ.get("SQL_PROXY_SENTRY_DSN")
    if sentry_dsn:
        updates["sentry_dsn"] = sentry_dsn
    for key, value in cli_overrides.items():
        if value is not None:
            updates[key] = value
    try:
        return ServerSettings.model_validate(
            {**config.server.model_dump(), **updates}
        )
    except ValueError as e:
        raise ConfigError(f"Invalid server settings: {e}") from e
