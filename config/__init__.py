"""
Configuration Module

This module provides centralized configuration management for serverless_mysql:
- Connection retry and backoff settings
- Zombie connection reaping thresholds
- Query retry and SQL echo settings
- Connection parameters from environment variables
- Configuration validation and loading

Implements a flexible, environment-aware configuration system
with sensible defaults and comprehensive validation using Pydantic.
"""

from .settings import (
    ConnectionSettings,
    ServerlessMySQLSettings,
    load_settings,
)

__all__ = [
    'ConnectionSettings',
    'ServerlessMySQLSettings',
    'load_settings',
]
