"""
Docker Engine Client

Thin async client over the Docker Engine HTTP API. Speaks to the daemon
through its unix socket (or named pipe / TCP) using aiohttp, and exposes
only the operations neurontainer's actions need:

    containers: list, start, stop, restart, remove
    images:     list

Every call raises on failure and is otherwise safe to call concurrently.
"""

import logging
import os
import sys
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from .errors import DockerAPIError, NeurontainerError

logger = logging.getLogger(__name__)

DEFAULT_UNIX_HOST = "unix:///var/run/docker.sock"
DEFAULT_NPIPE_HOST = "npipe:////./pipe/docker_engine"


def resolve_docker_host(env_host: Optional[str] = None, platform: Optional[str] = None) -> str:
    """
    Pick the Docker host to talk to.

    A Windows named pipe handed to a non-Windows process (the extension VM
    inherits the host's DOCKER_HOST) falls back to the unix socket.
    """
    platform = platform or sys.platform
    if env_host and platform != "win32" and env_host.startswith("npipe:"):
        return DEFAULT_UNIX_HOST
    if env_host:
        return env_host
    return DEFAULT_NPIPE_HOST if platform == "win32" else DEFAULT_UNIX_HOST


def socket_path_from_docker_host(host: str) -> Optional[str]:
    if host.startswith("unix://"):
        return host[len("unix://"):]
    return None


def docker_socket_exists(host: str) -> bool:
    socket_path = socket_path_from_docker_host(host or "")
    return os.path.exists(socket_path) if socket_path else False


def container_display_name(container: Dict[str, Any]) -> str:
    """`/web` -> `web`; falls back to the short id"""
    names = container.get("Names") or []
    if names and names[0]:
        return names[0].replace("/", "", 1)
    container_id = container.get("Id") or ""
    return container_id[:12] if container_id else "Unknown container"


class DockerEngineClient:
    """
    Async Docker Engine API client.

    Usage:
        client = DockerEngineClient("unix:///var/run/docker.sock")
        await client.ping()
        containers = await client.container_list(all=True)
        await client.close()
    """

    def __init__(self, host: str = DEFAULT_UNIX_HOST, timeout: float = 30.0):
        self.host = host
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    def _build_session(self) -> aiohttp.ClientSession:
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        if self.host.startswith("unix://"):
            connector = aiohttp.UnixConnector(path=self.host[len("unix://"):])
            self._base_url = "http://docker"
        elif self.host.startswith("npipe://"):
            pipe = self.host[len("npipe://"):].replace("/", "\\")
            connector = aiohttp.NamedPipeConnector(path=pipe)
            self._base_url = "http://docker"
        elif self.host.startswith(("tcp://", "http://", "https://")):
            connector = None
            scheme = "http" if self.host.startswith("tcp://") else self.host.split("://", 1)[0]
            self._base_url = f"{scheme}://{self.host.split('://', 1)[1].rstrip('/')}"
        else:
            raise NeurontainerError(f"Unsupported DOCKER_HOST: {self.host}")

        return aiohttp.ClientSession(connector=connector, timeout=timeout)

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        if self._session is None or self._session.closed:
            self._session = self._build_session()

        url = f"{self._base_url}{path}"
        async with self._session.request(method, url, params=params) as resp:
            if resp.status >= 400:
                try:
                    body = await resp.json(content_type=None)
                    message = body.get("message") if isinstance(body, dict) else str(body)
                except (ValueError, aiohttp.ContentTypeError):
                    message = await resp.text()
                raise DockerAPIError(resp.status, message or resp.reason or "", path=path)

            if resp.content_type == "application/json":
                return await resp.json()
            return await resp.text()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # =========================================================================
    # SYSTEM
    # =========================================================================

    async def ping(self) -> bool:
        """Check the daemon answers; raises if it does not"""
        result = await self._request("GET", "/_ping")
        return str(result).strip() == "OK"

    # =========================================================================
    # CONTAINERS
    # =========================================================================

    async def container_list(self, all: bool = True) -> List[Dict[str, Any]]:
        return await self._request("GET", "/containers/json", params={"all": "1" if all else "0"})

    async def container_start(self, container: str) -> None:
        await self._request("POST", f"/containers/{quote(container, safe='')}/start")

    async def container_stop(self, container: str) -> None:
        await self._request("POST", f"/containers/{quote(container, safe='')}/stop")

    async def container_restart(self, container: str) -> None:
        await self._request("POST", f"/containers/{quote(container, safe='')}/restart")

    async def container_delete(self, container: str, force: bool = True) -> None:
        await self._request(
            "DELETE",
            f"/containers/{quote(container, safe='')}",
            params={"force": "1" if force else "0"},
        )

    # =========================================================================
    # IMAGES
    # =========================================================================

    async def image_list(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/images/json")
