"""
Shared test doubles for neurontainer tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from neurontainer.core.catalog import ActionCatalog
from neurontainer.core.types import ActionData, ActionResult, PermissionLevel, RCEAction


class FakeTransport:
    """Records what the dispatcher sends on each port"""

    def __init__(self):
        self.results: List[tuple] = []
        self.contexts: List[tuple] = []

    async def send_action_result(self, action_id, success, message=None):
        if message is None:
            self.results.append((action_id, success))
        else:
            self.results.append((action_id, success, message))

    async def send_context(self, message, silent=False):
        self.contexts.append((message, silent))


class FakeNeuroClient:
    """
    Stand-in for NeuroClient.

    With auto_open the socket opens as soon as start() is called; otherwise
    the test calls `await client.open()` when it wants the handshake to land.
    """

    def __init__(self, url: str, game: str, on_open=None, auto_open: bool = True):
        self.url = url
        self.game = game
        self._on_open = on_open
        self.auto_open = auto_open
        self.ready_state = 3
        self.on_error = None
        self.on_close = None
        self.action_callbacks: List[Any] = []
        self.registered: List[List[str]] = []
        self.unregistered: List[List[str]] = []
        self.results: List[tuple] = []
        self.contexts: List[tuple] = []
        self.started = False
        self.disconnected = False
        self.close_on_disconnect = False
        self._opened = asyncio.Event()

    def describe(self) -> str:
        return f"ws[url={self.url}, readyState={self.ready_state}]"

    def on_action(self, callback):
        self.action_callbacks.append(callback)

    async def start(self):
        self.started = True
        self.ready_state = 0
        if self.auto_open:
            await self.open()

    async def open(self):
        self.ready_state = 1
        if self._on_open is not None:
            await self._on_open()
        self._opened.set()

    async def fail(self, error: Exception):
        """Simulate a handshake that never opens"""
        self.ready_state = 3
        if self.on_error is not None:
            self.on_error(error)
        if self.on_close is not None:
            self.on_close("connect_failed", str(error))
        self._opened.set()

    async def wait_until_open(self):
        await self._opened.wait()

    async def disconnect(self):
        self.disconnected = True
        self.ready_state = 3
        if self.close_on_disconnect and self.on_close is not None:
            self.on_close(1000, "client disconnect")

    async def register_actions(self, actions):
        self.registered.append([a.name for a in actions])

    async def unregister_actions(self, names):
        self.unregistered.append(list(names))

    async def send_action_result(self, action_id, success, message=None):
        self.results.append((action_id, success, message))

    async def send_context(self, message, silent=False):
        self.contexts.append((message, silent))


class FakeClientFactory:
    """client_factory for ConnectionManager that keeps every client it built"""

    def __init__(self, auto_open: bool = True):
        self.auto_open = auto_open
        self.clients: List[FakeNeuroClient] = []

    def __call__(self, url, game, on_open=None):
        client = FakeNeuroClient(url, game, on_open=on_open, auto_open=self.auto_open)
        self.clients.append(client)
        return client


class FakeDocker:
    """In-memory Docker Engine client"""

    def __init__(self, containers: Optional[List[Dict[str, Any]]] = None,
                 images: Optional[List[Dict[str, Any]]] = None,
                 alive: bool = True):
        self.containers = containers if containers is not None else []
        self.images = images if images is not None else []
        self.alive = alive
        self.calls: List[tuple] = []
        self.closed = False

    async def ping(self):
        if isinstance(self.alive, Exception):
            raise self.alive
        return self.alive

    async def close(self):
        self.closed = True

    async def container_list(self, all=True):
        self.calls.append(("list", all))
        return self.containers

    async def container_start(self, container):
        self.calls.append(("start", container))

    async def container_stop(self, container):
        self.calls.append(("stop", container))

    async def container_restart(self, container):
        self.calls.append(("restart", container))

    async def container_delete(self, container, force=True):
        self.calls.append(("delete", container, force))

    async def image_list(self):
        self.calls.append(("images",))
        return self.images


async def pong_handler(action_data: ActionData) -> ActionResult:
    return ActionResult(success=True, message="pong")


def make_action(name: str, level: PermissionLevel = PermissionLevel.AUTOPILOT, **kwargs) -> RCEAction:
    kwargs.setdefault("handler", pong_handler)
    kwargs.setdefault("description", f"{name} action")
    return RCEAction(name=name, default_permission=level, **kwargs)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def three_action_catalog():
    return ActionCatalog([
        make_action("list_containers", PermissionLevel.OFF),
        make_action("start_container", PermissionLevel.FORCE),
        make_action("get_cookie", PermissionLevel.AUTOPILOT),
    ])


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "data" / "config.json"
