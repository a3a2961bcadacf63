"""
neurontainer Configuration Schema

Defines the runtime configuration of the backend.
All settings can come from neurontainer.yaml or environment variables.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.docker_client import resolve_docker_host

DEFAULT_NEURO_URL = "ws://host.docker.internal:8000"
DEFAULT_CONFIG_PATH = str(Path("/data") / "config.json")
DEFAULT_CHANGELOG_PATH = str(Path("/app") / "CHANGELOG.md")


@dataclass
class NeuroConfig:
    """Connection to the Neuro API server"""
    websocket_url: str = DEFAULT_NEURO_URL
    connect_timeout_ms: int = 6000
    auto_connect: bool = True


@dataclass
class DockerConfig:
    """Docker daemon endpoint"""
    host: str = field(default_factory=resolve_docker_host)


@dataclass
class ServerConfig:
    """Control surface (HTTP) settings"""
    host: str = "127.0.0.1"
    port: int = 8080
    # When set, serve on this unix socket instead of host:port
    socket_path: Optional[str] = None


@dataclass
class PathsConfig:
    """Where persistent files live"""
    config_path: str = DEFAULT_CONFIG_PATH
    changelog_path: str = DEFAULT_CHANGELOG_PATH
    log_dir: str = "."


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file_logs: bool = False


@dataclass
class AppConfig:
    """
    Central configuration for neurontainer.

    Example neurontainer.yaml:
    ```yaml
    name: neurontainer
    version: "0.3.0"

    neuro:
      websocket_url: "${NEURO_SERVER_URL:-ws://host.docker.internal:8000}"
      connect_timeout_ms: 6000

    docker:
      host: "unix:///var/run/docker.sock"

    server:
      socket_path: /run/guest-services/backend.sock

    paths:
      config_path: /data/config.json
      changelog_path: /app/CHANGELOG.md

    logging:
      level: INFO
      file_logs: true
    ```
    """
    name: str = "neurontainer"
    version: str = "0.3.0"

    neuro: NeuroConfig = field(default_factory=NeuroConfig)
    docker: DockerConfig = field(default_factory=DockerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        """Create AppConfig from dictionary (e.g., parsed YAML)"""
        neuro_data = data.get("neuro", {}) or {}
        neuro_config = NeuroConfig(
            websocket_url=neuro_data.get("websocket_url", DEFAULT_NEURO_URL),
            connect_timeout_ms=int(neuro_data.get("connect_timeout_ms", 6000)),
            auto_connect=bool(neuro_data.get("auto_connect", True)),
        )

        docker_data = data.get("docker", {}) or {}
        docker_config = DockerConfig(host=resolve_docker_host(docker_data.get("host")))

        server_data = data.get("server", {}) or {}
        server_config = ServerConfig(
            host=server_data.get("host", "127.0.0.1"),
            port=int(server_data.get("port", 8080)),
            socket_path=server_data.get("socket_path"),
        )

        paths_data = data.get("paths", {}) or {}
        paths_config = PathsConfig(
            config_path=paths_data.get("config_path", DEFAULT_CONFIG_PATH),
            changelog_path=paths_data.get("changelog_path", DEFAULT_CHANGELOG_PATH),
            log_dir=paths_data.get("log_dir", "."),
        )

        logging_data = data.get("logging", {}) or {}
        logging_config = LoggingConfig(
            level=str(logging_data.get("level", "INFO")).upper(),
            file_logs=bool(logging_data.get("file_logs", False)),
        )

        return cls(
            name=data.get("name", "neurontainer"),
            version=str(data.get("version", "0.3.0")),
            neuro=neuro_config,
            docker=docker_config,
            server=server_config,
            paths=paths_config,
            logging=logging_config,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (for serialization)"""
        return {
            "name": self.name,
            "version": self.version,
            "neuro": {
                "websocket_url": self.neuro.websocket_url,
                "connect_timeout_ms": self.neuro.connect_timeout_ms,
                "auto_connect": self.neuro.auto_connect,
            },
            "docker": {"host": self.docker.host},
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "socket_path": self.server.socket_path,
            },
            "paths": {
                "config_path": self.paths.config_path,
                "changelog_path": self.paths.changelog_path,
                "log_dir": self.paths.log_dir,
            },
            "logging": {
                "level": self.logging.level,
                "file_logs": self.logging.file_logs,
            },
        }
