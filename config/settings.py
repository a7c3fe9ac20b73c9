"""
Pydantic Settings for serverless_mysql

This module provides strongly-typed configuration settings using Pydantic,
with support for environment variables and YAML configuration files.
"""

from typing import Any, Callable, Dict, Optional, Union
from pathlib import Path
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConnectionSettings(BaseSettings):
    """
    Connection settings for opening a MySQL session.

    These settings are only used when no explicit ``config`` mapping or
    connection string is handed to the client. Unset values are left out of
    the connection configuration so the driver defaults apply.
    """
    host: Optional[str] = Field(None, description="Hostname or IP address of the MySQL server")
    port: Optional[int] = Field(None, description="Port number on which MySQL is listening")
    user: Optional[str] = Field(None, description="Username for authentication")
    password: Optional[str] = Field(None, description="Password for authentication")
    database: Optional[str] = Field(None, description="Default database for the session")
    extra: Dict[str, Any] = Field(default_factory=dict,
                                  description="Additional driver options passed through verbatim")

    model_config = SettingsConfigDict(env_prefix="MYSQL_", case_sensitive=False, extra="ignore")

    def to_config(self) -> Dict[str, Any]:
        """Return the connection configuration mapping with unset values omitted."""
        config = {
            key: value
            for key, value in self.model_dump(exclude={"extra"}).items()
            if value is not None
        }
        config.update(self.extra)
        return config


class ServerlessMySQLSettings(BaseSettings):
    """
    Main settings class for connection management, retries and zombie reaping.

    Durations follow the units MySQL reports them in: backoff and cache
    settings are milliseconds, zombie timeouts are seconds (the process list
    ``time`` column).

    Usage:
        # Load from environment variables and defaults
        settings = ServerlessMySQLSettings()

        # Override in code
        settings = ServerlessMySQLSettings(max_retries=10, backoff="decorrelated")

        # Load from YAML file
        settings = ServerlessMySQLSettings.from_yaml('serverless_mysql.yaml')
    """
    # Connection retry backoff
    backoff: Union[str, Callable[..., Any]] = Field("full",
        description="Backoff used when retrying connections: 'full', 'decorrelated' or a function (previous_wait, retries) -> ms")
    base: int = Field(2, ge=0, description="Base delay in milliseconds for the backoff algorithms")
    cap: int = Field(100, ge=0, description="Maximum delay in milliseconds between retries")
    max_retries: int = Field(50, ge=0, description="Maximum number of connection retries on capacity errors")

    # Connection management
    manage_conns: bool = Field(True, description="Whether end() should reap zombies and close connections")
    conn_utilization: float = Field(0.8, gt=0, le=1,
        description="Fraction of the connection ceiling above which end() starts reclaiming connections")
    max_conns_freq: int = Field(15000, ge=0, description="Milliseconds to cache the max-connections lookup")
    used_conns_freq: int = Field(0, ge=0, description="Milliseconds to cache the used-connections lookup")
    zombie_min_timeout: int = Field(3, ge=0, description="Minimum idle seconds before a session may be killed")
    zombie_max_timeout: int = Field(900, ge=0, description="Idle seconds after which sessions are always killed")

    # Queries
    return_final_sql_query: bool = Field(False,
        description="Attach the final substituted SQL to results and errors")
    max_query_retries: int = Field(0, ge=0, description="Maximum number of retries for transient query errors")
    query_retry_backoff: Union[str, Callable[..., Any]] = Field("full",
        description="Backoff used when retrying queries: 'full', 'decorrelated' or a function")

    connection: ConnectionSettings = Field(default_factory=ConnectionSettings,
                                           description="Connection settings used when no config is given")

    model_config = SettingsConfigDict(
        env_prefix="SERVERLESS_MYSQL_",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
        arbitrary_types_allowed=True,
    )

    @field_validator("backoff", "query_retry_backoff", mode="before")
    @classmethod
    def _normalize_backoff(cls, value: Any) -> Any:
        if value is None:
            return "full"
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @classmethod
    def from_yaml(cls, yaml_file: Union[str, Path]) -> "ServerlessMySQLSettings":
        """Load settings from YAML file"""
        import yaml
        with open(yaml_file, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)


def load_settings(config_path: Optional[str] = None) -> ServerlessMySQLSettings:
    """
    Load settings from file and/or environment variables.

    - If config_path is provided and exists, loads settings from the YAML file
    - Otherwise, creates a new settings instance with values from environment variables

    Args:
        config_path: Path to YAML configuration file. If None or file doesn't exist,
                    falls back to environment variables and default values.

    Returns:
        ServerlessMySQLSettings object with loaded configuration

    Example:
        settings = load_settings("/var/task/serverless_mysql.yaml")
    """
    if config_path and os.path.exists(config_path):
        return ServerlessMySQLSettings.from_yaml(config_path)
    return ServerlessMySQLSettings()
