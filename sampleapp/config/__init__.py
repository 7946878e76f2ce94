"""
Configuration loading for the SampleApp API.

Configuration values are resolved using the following precedence:

1. Explicit overrides passed to `load_config`
2. Environment variables (e.g., SAMPLEAPP_PORT)
3. `sampleapp.toml` if present in the working directory
4. Built-in defaults

The listening port has no default; a missing port is a configuration
error rather than a silent fallback.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

__all__ = [
    "ConfigError",
    "CorsConfig",
    "DEFAULT_ENVIRONMENT_KEY",
    "DEFAULT_MAX_BODY_BYTES",
    "DatabaseConfig",
    "LoggingConfig",
    "OriginPolicy",
    "ServerConfig",
    "load_config",
]


DEFAULT_CONFIG_FILE = Path("sampleapp.toml")
DEFAULT_DB_PATH = Path(".sampleapp/sampleapp.db")
DEFAULT_MAX_BODY_BYTES = 5 * 1024 * 1024
DEFAULT_ENVIRONMENT_KEY = "default"

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or validated."""


class OriginPolicy(BaseModel):
    """Protocols and domains whose cross-product forms the allowed origins."""

    protocols: List[str] = Field(
        default_factory=lambda: ["http://", "https://"],
        description="Allowed origin schemes, including the '://' separator",
    )
    domains: List[str] = Field(
        default_factory=lambda: ["localhost", "127.0.0.1"],
        description="Allowed origin hosts",
    )

    @field_validator("protocols")
    @classmethod
    def _check_protocols(cls, value: List[str]) -> List[str]:
        for protocol in value:
            if not re.fullmatch(r"[a-z][a-z0-9+.-]*://", protocol):
                raise ValueError(f"Invalid origin protocol: {protocol!r}")
        return value

    @field_validator("domains")
    @classmethod
    def _check_domains(cls, value: List[str]) -> List[str]:
        for domain in value:
            if not domain or "/" in domain or ":" in domain:
                raise ValueError(f"Invalid origin domain: {domain!r}")
        return value


def _default_origin_policies() -> Dict[str, OriginPolicy]:
    # Only one environment is known today; see DESIGN.md open questions.
    return {DEFAULT_ENVIRONMENT_KEY: OriginPolicy()}


class CorsConfig(BaseModel):
    """Cross-origin configuration keyed by deployment environment."""

    environments: Dict[str, OriginPolicy] = Field(
        default_factory=_default_origin_policies,
        description="Origin policy per environment; 'default' is the fallback",
    )

    def policy_for(self, environment: str) -> OriginPolicy:
        """Return the origin policy for `environment`, falling back to 'default'."""

        if environment in self.environments:
            return self.environments[environment]
        try:
            return self.environments[DEFAULT_ENVIRONMENT_KEY]
        except KeyError as exc:
            raise ConfigError(
                f"No CORS policy for environment {environment!r} and no "
                f"{DEFAULT_ENVIRONMENT_KEY!r} entry"
            ) from exc


class DatabaseConfig(BaseModel):
    """Backing store configuration."""

    path: str = Field(str(DEFAULT_DB_PATH), description="SQLite path or ':memory:'")
    tables: List[str] = Field(
        default_factory=list, description="Tables exposed through the model set"
    )

    @field_validator("tables")
    @classmethod
    def _check_tables(cls, value: List[str]) -> List[str]:
        for table in value:
            if not _TABLE_NAME.match(table):
                raise ValueError(f"Invalid table name: {table!r}")
        return value


class LoggingConfig(BaseModel):
    """Structured logging configuration."""

    level: str = Field("INFO", description="Log level")
    format: str = Field("console", description="'json' or 'console'")
    file: Optional[Path] = Field(None, description="Optional rotating log file")

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in {"json", "console"}:
            raise ValueError(f"Unknown log format: {value!r}")
        return value


class ServerConfig(BaseModel):
    """Top-level configuration consumed by the bring-up sequence."""

    port: int = Field(..., description="TCP port to listen on")
    host: str = Field("0.0.0.0", description="Interface to bind")
    environment: str = Field("development", description="Deployment environment")
    max_body_bytes: int = Field(
        DEFAULT_MAX_BODY_BYTES, description="Maximum request payload size", gt=0
    )
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    cors: CorsConfig = Field(default_factory=CorsConfig)

    model_config = ConfigDict(frozen=True)


def load_config(
    config_path: Optional[Path | str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ServerConfig:
    """
    Load service configuration from overrides/environment/file/defaults.

    Args:
        config_path: Optional explicit path to a `sampleapp.toml` file.
        overrides: Optional top-level values that win over everything else.

    Returns:
        ServerConfig populated with the resolved values.

    Raises:
        ConfigError: if the file is missing, the port is absent, or
            validation fails.
    """

    raw_data = _load_toml_data(config_path)
    overrides = overrides or {}
    server_data = raw_data.get("server", {})
    db_data = raw_data.get("database", {})
    log_data = raw_data.get("logging", {})

    port = overrides.get("port", _env_or_value("SAMPLEAPP_PORT", server_data.get("port"), None))
    if port is None:
        raise ConfigError("Listening port is required (set SAMPLEAPP_PORT or [server].port)")

    tables_env = os.getenv("SAMPLEAPP_DB_TABLES")
    tables = (
        [t.strip() for t in tables_env.split(",") if t.strip()]
        if tables_env is not None
        else db_data.get("tables", [])
    )
    log_file = _env_or_value("SAMPLEAPP_LOG_FILE", log_data.get("file"), None)

    data: Dict[str, Any] = {
        "port": port,
        "host": _env_or_value("SAMPLEAPP_HOST", server_data.get("host"), "0.0.0.0"),
        "environment": _env_or_value(
            "SAMPLEAPP_ENV", server_data.get("environment"), "development"
        ),
        "max_body_bytes": _env_or_value(
            "SAMPLEAPP_MAX_BODY_BYTES",
            server_data.get("max_body_bytes"),
            DEFAULT_MAX_BODY_BYTES,
        ),
        "database": {
            "path": _env_or_value("SAMPLEAPP_DB_PATH", db_data.get("path"), DEFAULT_DB_PATH),
            "tables": tables,
        },
        "logging": {
            "level": _env_or_value("SAMPLEAPP_LOG_LEVEL", log_data.get("level"), "INFO"),
            "format": _env_or_value("SAMPLEAPP_LOG_FORMAT", log_data.get("format"), "console"),
            "file": log_file,
        },
    }
    cors_data = raw_data.get("cors", {})
    if cors_data.get("environments"):
        environments: Dict[str, Any] = {
            name: policy.model_dump() for name, policy in _default_origin_policies().items()
        }
        environments.update(cors_data["environments"])
        data["cors"] = {"environments": environments}
    data.update({k: v for k, v in overrides.items() if k != "port"})

    try:
        return ServerConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def _load_toml_data(config_path: Optional[Path | str]) -> Dict[str, Any]:
    """Load data from a TOML file if one can be resolved."""

    resolved = _resolve_config_path(config_path)
    if resolved is None:
        return {}

    if not resolved.exists():
        raise ConfigError(f"Configuration file not found: {resolved}")

    try:
        with resolved.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Cannot parse {resolved}: {exc}") from exc


def _resolve_config_path(config_path: Optional[Path | str]) -> Optional[Path]:
    """Resolve configuration path with environment fallback."""

    if config_path:
        return Path(config_path)

    env_path = os.getenv("SAMPLEAPP_CONFIG_FILE")
    if env_path:
        return Path(env_path)

    return DEFAULT_CONFIG_FILE if DEFAULT_CONFIG_FILE.exists() else None


def _env_or_value(env_var: str, value: Any, default: Any) -> Optional[str]:
    """Return environment variable value if set, otherwise fallback to provided/default values."""

    env_value = os.getenv(env_var)
    if env_value is not None:
        return env_value
    if value is not None:
        return str(value)
    return None if default is None else str(default)
