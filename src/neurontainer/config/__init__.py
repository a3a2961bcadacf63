"""
neurontainer Configuration Module

Provides centralized configuration management for the backend.
"""

from .schema import AppConfig, DockerConfig, LoggingConfig, NeuroConfig, PathsConfig, ServerConfig
from .loader import apply_env_overrides, load_config, load_config_from_file

__all__ = [
    "AppConfig",
    "DockerConfig",
    "LoggingConfig",
    "NeuroConfig",
    "PathsConfig",
    "ServerConfig",
    "apply_env_overrides",
    "load_config",
    "load_config_from_file",
]
