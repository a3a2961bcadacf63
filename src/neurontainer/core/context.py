"""
Application Context

Holds the process-wide singletons and wires them together:

    catalog ──> permission store ──(delta)──> connection manager
                                                  │ inbound actions
                                                  v
    docker client <── actions <────────────── dispatch engine

The context is created once at startup; the control server and the CLI
entry point only talk to it.
"""

import logging
from typing import Any, Callable, Dict, Optional

from ..actions import build_catalog
from ..channels.connection import ConnectionManager
from ..channels.neuro_client import NeuroClient
from ..config.schema import AppConfig
from .dispatcher import DispatchEngine
from .docker_client import DockerEngineClient, docker_socket_exists, socket_path_from_docker_host
from .errors import DockerNotReadyError
from .permissions import PermissionStore

logger = logging.getLogger(__name__)


class AppContext:
    """
    Owns catalog, permission store, Docker client, connection and dispatcher.

    Usage:
        context = AppContext(config)
        await context.start()
        ...
        await context.shutdown()
    """

    def __init__(
        self,
        config: AppConfig,
        client_factory: Callable[..., Any] = NeuroClient,
        docker_factory: Callable[[str], Any] = DockerEngineClient,
    ):
        self.config = config
        self.docker_factory = docker_factory

        self.docker: Optional[DockerEngineClient] = None
        self.docker_error: Optional[str] = None

        self.catalog = build_catalog(self.get_docker)
        self.store = PermissionStore(self.catalog, config.paths.config_path)
        self.connection = ConnectionManager(
            self.catalog,
            self.store,
            game_name=config.name,
            client_factory=client_factory,
            connect_timeout_ms=config.neuro.connect_timeout_ms,
        )
        self.dispatcher = DispatchEngine(
            self.catalog,
            self.store,
            transport=self.connection,
            docker_ready=self.docker_ready,
        )

        self.store.add_listener(self.connection.apply_delta)
        self.connection.set_action_handler(self.dispatcher.handle)

    # =========================================================================
    # DOCKER
    # =========================================================================

    def docker_ready(self) -> bool:
        return self.docker is not None

    def get_docker(self) -> DockerEngineClient:
        """
        Live Docker client for action handlers.

        Raises:
            DockerNotReadyError: If init has not succeeded yet
        """
        if self.docker is None:
            raise DockerNotReadyError("Docker client not initialized")
        return self.docker

    async def init_docker(self) -> DockerEngineClient:
        """
        Create the Docker client and check the daemon answers.

        Raises:
            DockerNotReadyError: If the daemon cannot be reached
        """
        host = self.config.docker.host
        logger.info(f"Initializing Docker client (host={host})")

        socket_path = socket_path_from_docker_host(host)
        if socket_path and not docker_socket_exists(host):
            logger.warning(f"Docker socket not found at {socket_path}")

        client = self.docker_factory(host)
        try:
            alive = await client.ping()
        except Exception as e:
            await client.close()
            self.docker_error = str(e)
            logger.error(f"Docker daemon not reachable at {host}: {e}")
            raise DockerNotReadyError(f"Docker daemon not reachable at {host}: {e}") from e

        if not alive:
            await client.close()
            self.docker_error = "Docker ping did not return OK"
            logger.error(f"Docker daemon at {host} did not answer ping")
            raise DockerNotReadyError(f"Docker daemon at {host} did not answer ping")

        self.docker = client
        self.docker_error = None
        logger.info("Docker client initialized")
        return client

    async def ensure_docker(self) -> DockerEngineClient:
        """Return the Docker client, retrying init if an earlier attempt failed"""
        if self.docker is not None:
            return self.docker
        return await self.init_docker()

    async def reload_docker_client(self) -> DockerEngineClient:
        """Drop the current Docker client and initialize a fresh one"""
        if self.docker is not None:
            try:
                await self.docker.close()
            except Exception as e:
                logger.warning(f"Error closing Docker client: {e}")
        self.docker = None
        return await self.init_docker()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """
        Load permissions, initialize Docker and connect to Neuro.

        Docker or Neuro being unavailable is logged, not fatal: the control
        surface stays up so the operator can fix things and reconnect.
        """
        self.store.load()

        try:
            await self.init_docker()
        except DockerNotReadyError as e:
            logger.warning(f"Starting without Docker: {e}")

        if self.config.neuro.auto_connect:
            try:
                await self.connection.connect(self.config.neuro.websocket_url)
            except Exception as e:
                logger.error(f"Failed to connect to Neuro at startup: {e}")

    async def shutdown(self) -> None:
        await self.connection.disconnect()
        if self.docker is not None:
            await self.docker.close()
            self.docker = None
        logger.info("neurontainer context shut down")

    def status(self) -> Dict[str, Any]:
        """Connection state snapshot for the control surface"""
        return {
            "docker": "connected" if self.docker_ready() else "disconnected",
            "neuro": "connected" if self.connection.is_open else "disconnected",
            "neuro_connected_flag": self.connection.connected,
            "neuro_server": self.connection.url or self.config.neuro.websocket_url,
            "neuro_ws": self.connection.describe(),
            "last_neuro_event": self.connection.last_event,
            "last_reconnect_request": self.connection.last_reconnect_request,
            "docker_host": self.config.docker.host,
            "docker_socket_exists": docker_socket_exists(self.config.docker.host),
            "docker_error": self.docker_error,
        }
