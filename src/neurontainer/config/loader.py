"""
neurontainer Configuration Loader

Loads configuration from YAML files with environment variable interpolation,
then applies the environment overrides the extension runtime sets.

Environment Variable Interpolation:
- ${VAR_NAME} - Required variable, raises error if not set
- ${VAR_NAME:-default} - Optional variable with default value

Environment overrides (applied after the file, before CLI flags):
- NEURO_SERVER_URL            -> neuro.websocket_url
- DOCKER_HOST                 -> docker.host
- NEURONTAINER_SOCKET_PATH    -> server.socket_path
- NEURONTAINER_CONFIG_PATH    -> paths.config_path
- NEURONTAINER_CHANGELOG_PATH -> paths.changelog_path
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
import logging

import yaml

from ..core.docker_client import resolve_docker_host
from .schema import AppConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "neurontainer.yaml"

# Pattern for environment variable substitution: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')


def interpolate_env_vars(value: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """
    Recursively interpolate environment variables in configuration values.

    Supports:
    - ${VAR_NAME} - Required, raises KeyError if not set
    - ${VAR_NAME:-default} - Optional with default value
    """
    environ = os.environ if environ is None else environ

    if isinstance(value, str):
        def replace_env_var(match):
            var_name = match.group(1)
            default_value = match.group(2)

            env_value = environ.get(var_name)

            if env_value is not None:
                return env_value
            elif default_value is not None:
                return default_value
            else:
                raise KeyError(
                    f"Environment variable '{var_name}' is required but not set. "
                    f"Set it or provide a default: ${{{var_name}:-default}}"
                )

        return ENV_VAR_PATTERN.sub(replace_env_var, value)

    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v, environ) for k, v in value.items()}

    elif isinstance(value, list):
        return [interpolate_env_vars(item, environ) for item in value]

    else:
        return value


def apply_env_overrides(config: AppConfig, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Overlay the runtime environment variables onto a loaded config"""
    environ = os.environ if environ is None else environ

    if environ.get("NEURO_SERVER_URL"):
        config.neuro.websocket_url = environ["NEURO_SERVER_URL"]
    if environ.get("DOCKER_HOST"):
        config.docker.host = resolve_docker_host(environ["DOCKER_HOST"])
    if environ.get("NEURONTAINER_SOCKET_PATH"):
        config.server.socket_path = environ["NEURONTAINER_SOCKET_PATH"]
    if environ.get("NEURONTAINER_CONFIG_PATH"):
        config.paths.config_path = environ["NEURONTAINER_CONFIG_PATH"]
    if environ.get("NEURONTAINER_CHANGELOG_PATH"):
        config.paths.changelog_path = environ["NEURONTAINER_CHANGELOG_PATH"]

    return config


def load_config_from_file(
    config_path: Union[str, Path],
    interpolate: bool = True,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        KeyError: If required environment variable is not set
        yaml.YAMLError: If YAML is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, 'r') as f:
        raw_config: Dict[str, Any] = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    if interpolate:
        try:
            raw_config = interpolate_env_vars(raw_config, environ)
        except KeyError as e:
            logger.error(f"Configuration error: {e}")
            raise

    return apply_env_overrides(AppConfig.from_dict(raw_config), environ)


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    working_dir: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """
    Load configuration with sensible defaults.

    Search order for configuration:
    1. Explicit config_path if provided
    2. neurontainer.yaml in working_dir (or the current directory)
    3. config/neurontainer.yaml in the same directory
    4. Default configuration
    """
    if config_path:
        return load_config_from_file(config_path, environ=environ)

    base = Path(working_dir) if working_dir else Path.cwd()
    search_paths = [base / CONFIG_FILENAME, base / "config" / CONFIG_FILENAME]

    for path in search_paths:
        if path.exists():
            logger.info(f"Found configuration at {path}")
            return load_config_from_file(path, environ=environ)

    logger.info(f"No {CONFIG_FILENAME} found, using default configuration")
    return apply_env_overrides(AppConfig(), environ)
