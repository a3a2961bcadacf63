"""
neurontainer Control Server

HTTP control surface for the Docker Desktop extension UI:
- /                      - Liveness + Neuro connection flag
- /api/status            - Docker / Neuro connection diagnostics
- /api/config            - Read and update action permissions
- /api/actions           - Catalog with current permission levels
- /api/containers        - Container listing and lifecycle
- /api/images            - Image listing
- /api/reconnect/neuro   - Operator-driven reconnect
- /api/changelog         - Release notes for the running version

Served by uvicorn on TCP or, inside the extension VM, on a unix socket.
"""

import asyncio
import logging
import os
import time
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from .changelog import load_changelog
from .config.schema import AppConfig
from .core.context import AppContext
from .core.docker_client import container_display_name
from .core.errors import ConfigValidationError, ConfigWriteError
from .core.permissions import serialize_config

logger = logging.getLogger(__name__)


class ReconnectRequest(BaseModel):
    """Body of POST /api/reconnect/neuro"""
    websocketUrl: Optional[str] = None


def _error(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


class ControlServer:
    """
    FastAPI app over an AppContext.

    Route structure:
    - GET    /
    - GET    /api/status
    - GET    /api/ping
    - GET    /api/config
    - PUT    /api/config
    - GET    /api/actions
    - GET    /api/containers
    - GET    /api/images
    - POST   /api/containers/{id}/start|stop|restart
    - DELETE /api/containers/{id}
    - POST   /api/reconnect/neuro
    - GET    /api/changelog
    """

    def __init__(
        self,
        context: AppContext,
        host: str = "127.0.0.1",
        port: int = 8080,
        socket_path: Optional[str] = None,
    ):
        self.context = context
        self.host = host
        self.port = port
        self.socket_path = socket_path
        self._server: Optional[uvicorn.Server] = None

        self.app = FastAPI(
            title=context.config.name,
            description="Docker control surface for Neuro",
            version=context.config.version,
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_routes()

    def _setup_routes(self):
        """Setup all routes on the control server"""

        @self.app.middleware("http")
        async def log_requests(request: Request, call_next):
            started = time.monotonic()
            response = await call_next(request)
            elapsed_ms = (time.monotonic() - started) * 1000
            logger.info(f"[http] {request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
            return response

        # =====================================================================
        # STATUS
        # =====================================================================

        @self.app.get("/")
        async def root():
            return {
                "status": "running",
                "neuro_connected": self.context.connection.is_open,
                "game_name": self.context.config.name,
            }

        @self.app.get("/api/status")
        async def status():
            return self.context.status()

        @self.app.get("/api/ping")
        async def ping():
            return {"success": True, "message": "pong"}

        # =====================================================================
        # PERMISSIONS
        # =====================================================================

        @self.app.get("/api/config")
        async def get_config():
            config = self.context.store.load()
            return {"success": True, "config": serialize_config(config)}

        @self.app.put("/api/config")
        async def put_config(request: Request):
            try:
                body = await request.json()
            except ValueError:
                return _error("Invalid JSON body", 400)

            incoming = body.get("config", body) if isinstance(body, dict) else body
            try:
                config = await self.context.store.update(incoming)
            except ConfigValidationError as e:
                return _error(str(e), 400)
            except ConfigWriteError as e:
                return _error(str(e), 500)

            return {"success": True, "config": serialize_config(config)}

        @self.app.get("/api/actions")
        async def list_actions():
            config = self.context.store.current
            actions = []
            for wire in self.context.catalog.wire_view():
                action = self.context.catalog.find_by_name(wire.name)
                entry = wire.to_dict()
                entry["displayName"] = action.display_name
                entry["permission"] = config[wire.name].value
                actions.append(entry)
            return {"success": True, "actions": actions}

        # =====================================================================
        # DOCKER
        # =====================================================================

        @self.app.get("/api/containers")
        async def list_containers():
            try:
                docker = await self.context.ensure_docker()
                containers = await docker.container_list(all=True)
            except Exception as e:
                logger.error(f"Failed to list containers: {e}")
                return _error(str(e) or "Failed to list containers")

            data = [
                {
                    "id": c.get("Id"),
                    "name": container_display_name(c),
                    "image": c.get("Image"),
                    "state": c.get("State"),
                    "status": c.get("Status"),
                }
                for c in containers
            ]
            return {"success": True, "data": data}

        @self.app.get("/api/images")
        async def list_images():
            try:
                docker = await self.context.ensure_docker()
                images = await docker.image_list()
            except Exception as e:
                logger.error(f"Failed to list images: {e}")
                return _error(str(e) or "Failed to list images")

            data = [
                {
                    "id": image.get("Id"),
                    "tags": image.get("RepoTags") or [],
                    "size": image.get("Size"),
                    "created": image.get("Created"),
                }
                for image in images
            ]
            return {"success": True, "data": data}

        @self.app.post("/api/containers/{container_id}/start")
        async def start_container(container_id: str):
            return await self._container_op("start", container_id)

        @self.app.post("/api/containers/{container_id}/stop")
        async def stop_container(container_id: str):
            return await self._container_op("stop", container_id)

        @self.app.post("/api/containers/{container_id}/restart")
        async def restart_container(container_id: str):
            return await self._container_op("restart", container_id)

        @self.app.delete("/api/containers/{container_id}")
        async def remove_container(container_id: str):
            return await self._container_op("remove", container_id)

        # =====================================================================
        # NEURO
        # =====================================================================

        @self.app.post("/api/reconnect/neuro")
        async def reconnect_neuro(body: Optional[ReconnectRequest] = None):
            requested = (body.websocketUrl if body else None) or self.context.config.neuro.websocket_url
            try:
                url = await self.context.connection.reconnect(requested)
            except Exception as e:
                return _error(str(e) or "Failed to reconnect NeuroClient")

            return {
                "success": True,
                "message": f"NeuroClient connected to {url}",
                "websocketUrl": url,
            }

        # =====================================================================
        # CHANGELOG
        # =====================================================================

        @self.app.get("/api/changelog")
        async def changelog(version: Optional[str] = None):
            wanted = version or self.context.config.version
            try:
                markdown = load_changelog(self.context.config.paths.changelog_path, wanted)
            except OSError as e:
                logger.warning(f"Changelog not readable: {e}")
                return _error(f"Changelog not available: {e}", 404)

            if markdown is None:
                return _error(f"No changelog entry for version {wanted}", 404)
            return {"success": True, "markdown": markdown, "version": wanted}

    async def _container_op(self, op: str, container_id: str) -> Any:
        try:
            docker = await self.context.ensure_docker()
            if op == "start":
                await docker.container_start(container_id)
            elif op == "stop":
                await docker.container_stop(container_id)
            elif op == "restart":
                await docker.container_restart(container_id)
            else:
                await docker.container_delete(container_id, force=True)
        except Exception as e:
            logger.error(f"Failed to {op} container {container_id}: {e}")
            return _error(str(e) or f"Failed to {op} container {container_id}")

        return {"success": True}

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    async def start(self):
        """Serve until stopped"""
        if self.socket_path:
            # Remove a stale socket left by a previous run
            if os.path.exists(self.socket_path):
                os.remove(self.socket_path)
            config = uvicorn.Config(self.app, uds=self.socket_path, log_level="info")
            logger.info(f"Control server listening on unix:{self.socket_path}")
        else:
            config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="info")
            logger.info(f"Control server listening on http://{self.host}:{self.port}")

        self._server = uvicorn.Server(config)
        await self._server.serve()

    async def stop(self):
        """Stop the control server"""
        if self._server is not None:
            self._server.should_exit = True
        logger.info("Control server stopped")


async def run_daemon(config: AppConfig) -> None:
    """Build the context, connect, and serve the control surface"""
    context = AppContext(config)
    server = ControlServer(
        context,
        host=config.server.host,
        port=config.server.port,
        socket_path=config.server.socket_path,
    )

    logger.info(f"Starting {config.name} v{config.version}")
    await context.start()

    try:
        await server.start()
    except asyncio.CancelledError:
        logger.info("Shutting down control server...")
        raise
    finally:
        await server.stop()
        await context.shutdown()
