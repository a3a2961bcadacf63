"""
Connection / Registration Manager

Owns the single logical connection to Neuro and keeps the set of actions
advertised on it in line with the permission store.

Every (re)connect attempt bumps `generation`. Callbacks are bound to the
generation they were created for and become no-ops once a newer attempt
has started, so a slow handshake from a superseded socket can never
register actions or report "connected" twice.

Reconnection is operator-driven (control surface); transport errors and
closes are logged and recorded but never trigger an automatic retry.
"""

import asyncio
import logging
import sys
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from ..core.catalog import ActionCatalog
from ..core.errors import ConnectionFailedError, ConnectionTimeoutError, TransportNotConnectedError
from ..core.permissions import ActionConfig, PermissionStore
from ..core.types import ActionData, PermissionLevel
from .neuro_client import NeuroClient

logger = logging.getLogger(__name__)

DEFAULT_NEURO_PORT = 8000
DEFAULT_CONNECT_TIMEOUT_MS = 6000

CONNECTED_CONTEXT = "neurontainer is now connected and ready to manage Docker containers"
RECONNECTED_CONTEXT = "neurontainer reconnected and ready to manage Docker containers"

_LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")


def normalize_neuro_url(url: str, platform: Optional[str] = None) -> Tuple[str, str, Optional[str]]:
    """
    Normalize a user-supplied Neuro WebSocket URL.

    - ws/wss without an explicit port gets :8000 (not the scheme default :80)
    - loopback hosts are rewritten to host.docker.internal, since inside the
      extension container localhost is the container itself

    Returns:
        (original, normalized, note) where note explains any rewrite
    """
    platform = platform or sys.platform
    try:
        parts = urlsplit(url)
        if parts.scheme not in ("ws", "wss") or not parts.hostname:
            return url, url, None
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return url, url, None

    notes = []
    if port is None:
        port = DEFAULT_NEURO_PORT
        notes.append("Added default port :8000 (ws/wss without explicit port defaults to :80)")

    is_local = hostname in _LOOPBACK_HOSTS or hostname.startswith("127.")
    if is_local and platform != "win32":
        hostname = "host.docker.internal"
        notes.append(
            "Rewrote localhost -> host.docker.internal (inside container localhost is not the host)"
        )

    if not notes:
        return url, url, None

    host = f"[{hostname}]" if ":" in hostname else hostname
    netloc = f"{host}:{port}"
    if parts.username:
        auth = parts.username + (f":{parts.password}" if parts.password else "")
        netloc = f"{auth}@{netloc}"
    normalized = urlunsplit((parts.scheme, netloc, parts.path or "/", parts.query, parts.fragment))
    return url, normalized, "; ".join(notes)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _err_to_string(err: Any) -> str:
    if isinstance(err, BaseException):
        return f"{type(err).__name__}: {err}"
    return str(err)


class ConnectionManager:
    """
    Lifecycle and registration sync for the Neuro transport.

    The manager is also the dispatcher's output port: results and context
    always go out on the current connection.
    """

    def __init__(
        self,
        catalog: ActionCatalog,
        store: PermissionStore,
        game_name: str = "neurontainer",
        client_factory: Callable[..., Any] = NeuroClient,
        connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS,
    ):
        self.catalog = catalog
        self.store = store
        self.game_name = game_name
        self.client_factory = client_factory
        self.connect_timeout_ms = connect_timeout_ms

        self.client: Optional[Any] = None
        self.url: Optional[str] = None
        self.generation = 0
        self.connected = False

        self.last_event: Optional[Dict[str, Any]] = None
        self.last_reconnect_request: Optional[Dict[str, Any]] = None

        self._action_handler: Optional[Callable[[ActionData], Any]] = None

    def set_action_handler(self, handler: Callable[[ActionData], Any]) -> None:
        """Route inbound actions (normally DispatchEngine.handle)"""
        self._action_handler = handler

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_open(self) -> bool:
        return self.client is not None and self.client.ready_state == 1

    def describe(self) -> str:
        if self.client is None:
            return "ws: none"
        return self.client.describe()

    def _set_event(self, event_type: str, **fields: Any) -> None:
        self.last_event = {"type": event_type, "at": _now_ms(), **fields}

    def _is_current(self, generation: int) -> bool:
        return generation == self.generation

    # =========================================================================
    # CONNECT / RECONNECT
    # =========================================================================

    def _create_client(self, url: str, generation: int, reconnect: bool) -> Any:
        holder: Dict[str, Any] = {}

        async def on_open() -> None:
            await self._handle_open(generation, holder["client"], reconnect)

        client = self.client_factory(url, self.game_name, on_open=on_open)
        holder["client"] = client
        client.on_error = lambda err: self._handle_error(generation, err)
        client.on_close = lambda code, reason="": self._handle_close(generation, code, reason)
        client.on_action(self._handle_action)
        return client

    async def connect(self, url: str) -> None:
        """
        Open the initial connection and wait until it is OPEN.

        A no-op when already connected.

        Raises:
            ConnectionTimeoutError: If the socket is not open in time
            ConnectionFailedError: If the socket closed before opening
        """
        if self.connected and self.is_open:
            return

        self.url = url
        self.generation += 1
        generation = self.generation
        logger.info(f"Trying Neuro server: {url}")
        self._set_event("connect_attempt", url=url)

        self.client = self._create_client(url, generation, reconnect=False)
        await self.client.start()
        await self._wait_for_open(self.client, url)

    async def reconnect(self, requested_url: str) -> str:
        """
        Replace the current connection with one to `requested_url`.

        The existing socket is torn down first, even mid-handshake, so two
        connections are never live at once.

        Returns:
            The normalized URL that is now connected

        Raises:
            ConnectionTimeoutError: If the new socket is not open in time
            ConnectionFailedError: If the new socket closed before opening
        """
        original, normalized, note = normalize_neuro_url(requested_url)
        self.last_reconnect_request = {
            "requested": original,
            "normalized": normalized,
            "note": note,
            "at": _now_ms(),
        }
        self._set_event("reconnect_request", requested=original, normalized=normalized, note=note)

        logger.info(f"Reconnect requested. url={original}")
        if note:
            logger.warning(note)
        logger.info(f"Reconnecting NeuroClient with URL: {normalized}")

        try:
            # Supersede the old socket before closing it so its teardown callbacks are stale
            self.generation += 1
            generation = self.generation
            await self._teardown()

            self.connected = False
            self.url = normalized

            self.client = self._create_client(normalized, generation, reconnect=True)
            await self.client.start()
            await self._wait_for_open(self.client, normalized)
        except Exception as e:
            logger.error(f"Error reconnecting NeuroClient: {e}")
            self._set_event(
                "reconnect_fail",
                requested=original,
                normalized=normalized,
                error=_err_to_string(e),
            )
            raise

        logger.info(f"Neuro connection confirmed: {self.describe()}")
        self._set_event("reconnect_success", url=normalized, ws=self.describe())
        return normalized

    async def disconnect(self) -> None:
        """Close the connection; pending callbacks of this generation are discarded"""
        self.generation += 1
        await self._teardown()
        self.connected = False

    async def _teardown(self) -> None:
        client = self.client
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as e:
            logger.warning(f"Error closing existing Neuro connection: {e}")

    async def _wait_for_open(self, client: Any, url: str) -> None:
        timeout_ms = self.connect_timeout_ms
        try:
            await asyncio.wait_for(client.wait_until_open(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise ConnectionTimeoutError(url, timeout_ms, client.describe()) from None

        if client.ready_state != 1:
            raise ConnectionFailedError(url, client.describe())

    # =========================================================================
    # TRANSPORT CALLBACKS
    # =========================================================================

    async def _handle_open(self, generation: int, client: Any, reconnect: bool) -> None:
        if not self._is_current(generation):
            logger.debug(f"Ignoring open from stale connection generation {generation}")
            return

        self.connected = True
        ws_info = client.describe()
        verb = "Reconnected" if reconnect else "Connected"
        logger.info(f"{verb} to Neuro-sama server at {self.url} {ws_info}")
        self._set_event("connected", url=self.url, ws=ws_info)

        await self.apply_full(self.store.current)
        if not self._is_current(generation):
            logger.debug(f"Connection generation {generation} was superseded during action sync")
            return
        await client.send_context(RECONNECTED_CONTEXT if reconnect else CONNECTED_CONTEXT, False)

    def _handle_error(self, generation: int, err: Any) -> None:
        if not self._is_current(generation):
            return
        ws_info = self.describe()
        logger.error(f"Neuro client error (url={self.url}, generation={generation}). {ws_info} {_err_to_string(err)}")
        self._set_event("error", url=self.url, ws=ws_info, error=_err_to_string(err))

    def _handle_close(self, generation: int, code: Any, reason: str = "") -> None:
        if not self._is_current(generation):
            return
        self.connected = False
        ws_info = self.describe()
        logger.warning(f"Neuro client closed (code={code}, reason={reason}) url={self.url} generation={generation}. {ws_info}")
        self._set_event("close", url=self.url, ws=ws_info, code=str(code), reason=str(reason))

    async def _handle_action(self, action_data: ActionData) -> None:
        if self._action_handler is None:
            logger.warning(f"No action handler installed, dropping action {action_data.name}")
            return
        await self._action_handler(action_data)

    # =========================================================================
    # REGISTRATION SYNC
    # =========================================================================

    async def apply_full(self, config: ActionConfig) -> List[str]:
        """
        Resync the advertised actions with a complete config.

        Unregisters every catalog action, then registers the enabled ones.

        Returns:
            Names of the actions now registered
        """
        enabled = [
            name for name in self.catalog.names()
            if PermissionLevel(config.get(name, PermissionLevel.OFF)).enabled
        ]

        if not self.is_open:
            logger.debug("Skipping full action sync, Neuro is not connected")
            return enabled

        await self.client.unregister_actions(self.catalog.names())
        if enabled:
            await self.client.register_actions(self.catalog.wire_view(enabled))
        logger.info(f"Registered {len(enabled)} action(s) with Neuro: {', '.join(enabled) or '<none>'}")
        return enabled

    async def apply_delta(self, previous: ActionConfig, next_config: ActionConfig) -> Tuple[List[str], List[str]]:
        """
        Push only the OFF / not-OFF transitions between two configs.

        FORCE <-> AUTOPILOT changes do not touch the registration.

        Returns:
            (registered, unregistered) action names
        """
        registered: List[str] = []
        unregistered: List[str] = []

        for name in self.catalog.names():
            default = self.catalog.find_by_name(name).default_permission
            was_enabled = PermissionLevel(previous.get(name, default)).enabled
            is_enabled = PermissionLevel(next_config.get(name, default)).enabled
            if was_enabled and not is_enabled:
                unregistered.append(name)
            elif is_enabled and not was_enabled:
                registered.append(name)

        if not self.is_open:
            logger.debug("Skipping action delta, Neuro is not connected")
            return registered, unregistered

        if unregistered:
            await self.client.unregister_actions(unregistered)
            logger.info(f"Unregistered actions: {', '.join(unregistered)}")
        if registered:
            await self.client.register_actions(self.catalog.wire_view(registered))
            logger.info(f"Registered actions: {', '.join(registered)}")
        return registered, unregistered

    # =========================================================================
    # OUTPUT PORTS
    # =========================================================================

    async def send_action_result(self, action_id: str, success: bool, message: Optional[str] = None) -> None:
        if not self.is_open:
            raise TransportNotConnectedError(f"Cannot send result for {action_id}: {self.describe()}")
        await self.client.send_action_result(action_id, success, message)

    async def send_context(self, message: str, silent: bool = False) -> None:
        if not self.is_open:
            raise TransportNotConnectedError(f"Cannot send context: {self.describe()}")
        await self.client.send_context(message, silent)
